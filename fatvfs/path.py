"""Normalization of logical paths as passed in by a file-serving client."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .typing import StrPath

__all__ = ['normalize_path', 'is_root', 'join_components']


def normalize_path(path: StrPath) -> tuple[str, ...]:
    """Return the components of ``path`` with ``.`` and ``..`` resolved.

    Leading slashes are irrelevant, every path is considered to be relative to
    the root directory. ``..`` removes the previous component and never climbs
    above the root. An empty tuple represents the root directory.

    Examples:
        - '/a/../a/b/./c' -> ('a', 'b', 'c')
        - '/..' -> ()
        - 'a//b/' -> ('a', 'b')
    """
    components: list[str] = []
    for part in os.fspath(path).split('/'):
        if part in ('', '.'):
            continue
        if part == '..':
            if components:
                components.pop()
            continue
        components.append(part)
    return tuple(components)


def is_root(path: StrPath) -> bool:
    """Return whether ``path`` normalizes to the root directory."""
    return not normalize_path(path)


def join_components(components: tuple[str, ...]) -> str:
    """Return the absolute logical path made up of ``components``."""
    return '/' + '/'.join(components)
