"""Command line access to a FAT image through the read-only storage backend."""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from typing import Sequence, TextIO

from .backend import Metadata, StorageBackend
from .base import StorageError
from .vfs import Meta, Vfs

__all__ = ["main", "format_meta"]


log = logging.getLogger(__name__)


def format_meta(meta: Metadata, name: str) -> str:
    """Format ``meta`` as one line of a long directory listing."""
    kind = "d" if meta.is_dir() else "-"
    try:
        modified = meta.modified().strftime("%Y-%m-%d %H:%M:%S")
    except StorageError:
        modified = "????-??-?? ??:??:??"
    return f"{kind} {meta.len():>10} {modified} {name}"


def _ls(
    backend: StorageBackend[Meta], args: argparse.Namespace, out: TextIO
) -> None:
    for info in backend.list(None, args.path):
        print(format_meta(info.metadata, info.path), file=out)


def _stat(
    backend: StorageBackend[Meta], args: argparse.Namespace, out: TextIO
) -> None:
    print(format_meta(backend.metadata(None, args.path), args.path), file=out)


def _cat(
    backend: StorageBackend[Meta], args: argparse.Namespace, out: TextIO
) -> None:
    stream = backend.get(None, args.path, args.offset)
    out.flush()
    shutil.copyfileobj(stream, out.buffer)  # type: ignore[attr-defined]
    out.buffer.flush()  # type: ignore[attr-defined]


def _cd(
    backend: StorageBackend[Meta], args: argparse.Namespace, out: TextIO
) -> None:
    backend.cwd(None, args.path)
    print(f"{args.path}: directory", file=out)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fatvfs", description="Read files from a FAT image without mounting it"
    )
    parser.add_argument("image", help="FAT image file or block device")
    parser.add_argument(
        "--no-vfat",
        dest="vfat",
        action="store_false",
        help="ignore long filenames and only use 8.3 names",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="increase log verbosity"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    ls = commands.add_parser("ls", help="list a directory")
    ls.add_argument("path", nargs="?", default="/")
    ls.set_defaults(func=_ls)

    stat = commands.add_parser("stat", help="show metadata of a file or directory")
    stat.add_argument("path")
    stat.set_defaults(func=_stat)

    cat = commands.add_parser("cat", help="write the content of a file to stdout")
    cat.add_argument("path")
    cat.add_argument("-o", "--offset", type=int, default=0, help="start offset")
    cat.set_defaults(func=_cat)

    cd = commands.add_parser("cd", help="check that a directory can be entered")
    cd.add_argument("path")
    cd.set_defaults(func=_cd)

    return parser


def main(argv: Sequence[str] = None, out: TextIO = None) -> int:
    args = _parser().parse_args(argv)
    if out is None:
        out = sys.stdout

    level = logging.WARNING - 10 * args.verbose
    logging.basicConfig(
        level=max(level, logging.DEBUG),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    backend: StorageBackend[Meta] = Vfs(args.image, vfat=args.vfat)
    try:
        args.func(backend, args, out)
    except StorageError as e:
        log.debug(f"{args.command} failed with {e.kind}")
        print(f"fatvfs: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
