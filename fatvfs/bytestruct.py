"""Declarative packed records for on-disk structures."""

from __future__ import annotations

import struct
from dataclasses import InitVar
from typing import Any, ClassVar, NamedTuple, TypeVar

from typing_extensions import Annotated, get_args, get_origin, get_type_hints

from .base import ValidationError
from .typing import NoneType

__all__ = ["ByteStruct"]


UINT_FORMATS = {1: "B", 2: "H", 4: "I", 8: "Q"}
INTERNAL_NAMES = (
    "__bytestruct_fields__",
    "__bytestruct_format__",
    "__bytestruct_size__",
    "__bytestruct_cached__",
)

_Bs = TypeVar("_Bs", bound="ByteStruct")


class _Field(NamedTuple):
    """What a single field of a `ByteStruct` looks like on disk.

    - `kind`: `int`, `bytes`, `NoneType` (padding) or a `ByteStruct` subclass.
    - `size`: Size of the field in bytes.
    """

    kind: Any
    size: int

    @property
    def embedded(self) -> bool:
        return isinstance(self.kind, _ByteStructMeta)


def _field_format(name: str, type_: Any) -> tuple[_Field, str]:
    """Return the field description and `struct` format specifier for the
    annotation `type_` of field `name`.
    """
    if isinstance(type_, _ByteStructMeta):
        size = len(type_)
        return _Field(type_, size), f"{size}s"

    if get_origin(type_) is not Annotated:
        raise TypeError(f"Field {name!r} must be annotated with a size")

    kind, size, *_ = get_args(type_)
    if not isinstance(size, int) or size < 1:
        raise TypeError(f"Size of field {name!r} must be a positive int")

    if kind is int:
        if size not in UINT_FORMATS:
            raise ValueError(
                f"Invalid int field size {size}, must be one of "
                f"{tuple(UINT_FORMATS)}"
            )
        return _Field(int, size), UINT_FORMATS[size]
    if kind is bytes:
        return _Field(bytes, size), f"{size}s"
    if kind is NoneType:
        return _Field(NoneType, size), f"{size}x"

    raise TypeError(f"Type {kind} of field {name!r} is not allowed for ByteStruct")


class _ByteStructMeta(type):
    """Metaclass of `ByteStruct`.

    Collects the annotated fields of a subclass into `__bytestruct_fields__` and
    builds the little-endian `struct` format used to unpack and pack it.
    """

    def __init__(cls, name: str, bases: tuple[type, ...], namespace: dict[str, Any]):
        super().__init__(name, bases, namespace)
        if not bases:
            return  # cls is ByteStruct

        format_ = "<"
        fields = {}
        for field_name, type_ in get_type_hints(cls, include_extras=True).items():
            if field_name in INTERNAL_NAMES or type(type_) is InitVar:
                continue
            if get_origin(type_) is ClassVar:
                continue
            fields[field_name], specifier = _field_format(field_name, type_)
            format_ += specifier

        cls.__bytestruct_fields__ = fields
        cls.__bytestruct_format__ = format_
        cls.__bytestruct_size__ = struct.calcsize(format_)

    def __len__(cls) -> int:
        """Size of the `bytes` form of the `ByteStruct` in bytes."""
        return cls.__bytestruct_size__


class ByteStruct(metaclass=_ByteStructMeta):
    """Packed little-endian binary record.

    Every subclass must be a frozen `dataclass` whose fields are annotated like
    this::

        @dataclasses.dataclass(frozen=True)
        class Record(ByteStruct):

            count: Annotated[int, 2]     # unsigned int of size 2 bytes
            label: Annotated[bytes, 11]  # bytes of size 11
            unused: Annotated[None, 4]   # 4 pad bytes
            inner: OtherRecord           # embedded ByteStruct

    Values are checked against their sizes when an instance is created; custom
    checks go into `validate()`.
    """

    # Populated per class
    __bytestruct_fields__: "dict[str, _Field]"
    __bytestruct_format__: str
    __bytestruct_size__: int

    # Populated per instance
    __bytestruct_cached__: bytes

    def __post_init__(self) -> None:
        params: Any = getattr(self, "__dataclass_params__", None)
        if params is None or not params.frozen:
            raise TypeError("ByteStruct subclass must be a frozen dataclass")
        if "__bytestruct_cached__" not in self.__dict__:
            self._pack_and_cache()
        self.validate()

    def _pack_and_cache(self) -> None:
        values = []
        for name, field in self.__bytestruct_fields__.items():
            if field.kind is NoneType:
                continue
            value = getattr(self, name)
            if field.embedded:
                value = bytes(value)
            elif field.kind is bytes and len(value) != field.size:
                raise ValidationError(
                    f"Value of field {name!r} must be of length {field.size} bytes, "
                    f"got {len(value)} bytes"
                )
            values.append(value)

        try:
            packed = struct.pack(self.__bytestruct_format__, *values)
        except (struct.error, OverflowError) as e:
            raise ValidationError(
                f"Value out of range (format is {self.__bytestruct_format__!r})"
            ) from e

        # Frozen dataclass, so bypass __setattr__()
        self.__dict__["__bytestruct_cached__"] = packed

    def validate(self) -> None:
        """Custom validation logic, run after the field values were checked."""

    @classmethod
    def from_bytes(cls: type[_Bs], b: bytes) -> _Bs:
        """Parse structure from `bytes`."""
        if cls is ByteStruct:
            raise TypeError("Cannot directly instantiate ByteStruct")

        size = cls.__bytestruct_size__
        if len(b) != size:
            raise ValueError(f"Structure is {size} bytes long, got {len(b)} bytes")

        unpacked = iter(struct.unpack(cls.__bytestruct_format__, b))
        values: list[Any] = []
        for field in cls.__bytestruct_fields__.values():
            if field.kind is NoneType:
                values.append(None)
            elif field.embedded:
                values.append(field.kind.from_bytes(next(unpacked)))
            else:
                values.append(next(unpacked))

        # Seed the cache so that __post_init__() doesn't pack the values again.
        self = cls.__new__(cls)
        self.__dict__["__bytestruct_cached__"] = bytes(b)
        self.__init__(*values)  # type: ignore[misc]
        return self

    def __bytes__(self) -> bytes:
        """`bytes` form of the `ByteStruct` instance."""
        return self.__bytestruct_cached__

    def __len__(self) -> int:
        """Size of the `bytes` form of the `ByteStruct` in bytes."""
        return self.__bytestruct_size__
