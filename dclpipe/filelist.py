"""Collecting, splitting and ordering file names for frame processing."""

from __future__ import annotations

import os
import re

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def is_dir(path: str) -> bool:
    """Return True when ``path`` exists and is a directory."""
    return os.path.isdir(path)


def get_extension(filename: str) -> str | None:
    """Return the part from the last dot on (dot included), or None."""
    pos = filename.rfind(".")
    return None if pos < 0 else filename[pos:]


def is_filter_ok(filename: str, extension: str) -> bool:
    """Return True when the text after the last dot equals ``extension``, ignoring case."""
    pos = filename.rfind(".")
    if pos < 0:
        return False
    return filename[pos + 1:].lower() == extension.lower()


def get_id(filename: str) -> int:
    """Return the integer that follows the last underscore, or -1."""
    pos = filename.rfind("_")
    if pos < 0:
        return -1
    match = _LEADING_INT.match(filename, pos + 1)
    return int(match.group(1)) if match else -1


def get_dirname(filename: str) -> tuple[str, str]:
    """Split ``filename`` into (directory, name); the directory defaults to '.'."""
    head, sep, tail = filename.rpartition("/")
    if not sep:
        return ".", filename
    return head, tail


def split_filename(filename: str) -> tuple[str, str, str | None]:
    """Split ``filename`` into (path, base, extension); extension is None if absent."""
    path, name = get_dirname(filename)
    base, sep, ext = name.rpartition(".")
    if not sep:
        return path, name, None
    return path, base, ext


def generate_filename(path: str, base: str, ext: str) -> str:
    """Join the parts as ``<path>/<base>.<ext>``."""
    return f"{path}/{base}.{ext}"


def sort_filelist(files: list[str]) -> list[str]:
    """Return the files ordered by the number after their last underscore."""
    return sorted(files, key=get_id)


def get_filelist(path: str, extension: str | None = None) -> list[str]:
    """List the files under ``path``.

    A plain file yields itself; a directory yields ``<path>/<name>`` for every
    entry whose extension matches ``extension`` (all entries when None).
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"{path} is not found")
    if not os.path.isdir(path):
        return [path]
    names = sorted(
        entry.name
        for entry in os.scandir(path)
        if extension is None or is_filter_ok(entry.name, extension)
    )
    return [f"{path}/{name}" for name in names]