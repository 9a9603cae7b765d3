"""Certain types used across the package."""

from __future__ import annotations

from os import PathLike
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    StrPath = Union[str, PathLike[str]]


__all__ = ['NoneType', 'StrPath']


NoneType = type(None)
