"""Reading and atomically replacing the JSON files the stores keep on disk.

Layout files are edited by other tools (and older releases wrote a UTF-8
BOM), so reads sniff the byte order mark and normalize newlines. Writes
go through a sibling temp file and ``os.replace`` so a watcher never sees
a half-written layout.
"""

from __future__ import annotations

import codecs
import hashlib
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "FileSignature",
    "read_text",
    "read_text_or_none",
    "write_text",
    "snapshot_file",
    "try_snapshot",
    "file_has_changed",
]

_BOMS: tuple[tuple[bytes, str], ...] = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


@dataclass(slots=True, frozen=True)
class FileSignature:
    """Size, mtime and content hash of a file at one point in time."""

    path: Path
    digest: str
    size: int
    modified_at: float


def read_text(path: Path | str, *, encoding: str | None = None) -> str:
    raw = Path(path).read_bytes()
    if encoding is None:
        encoding = next((name for bom, name in _BOMS if raw.startswith(bom)), None)
    if encoding is None:
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("latin-1")
    else:
        text = raw.decode(encoding)
    return text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")


def read_text_or_none(path: Path | str) -> str | None:
    """:func:`read_text`, or None when the file does not exist."""

    try:
        return read_text(path)
    except FileNotFoundError:
        return None


def write_text(path: Path | str, content: str, *, encoding: str = "utf-8") -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as stream:
            stream.write(content)
            stream.flush()
            os.fsync(stream.fileno())
        os.replace(temp_path, target)
    except BaseException:
        Path(temp_path).unlink(missing_ok=True)
        raise
    return target


def snapshot_file(path: Path | str) -> FileSignature:
    target = Path(path)
    stat = target.stat()
    return FileSignature(
        path=target,
        digest=_digest(target.read_bytes()),
        size=stat.st_size,
        modified_at=stat.st_mtime,
    )


def try_snapshot(path: Path | str) -> FileSignature | None:
    """:func:`snapshot_file`, or None while the file is missing or unreadable."""

    try:
        return snapshot_file(path)
    except OSError:
        return None


def file_has_changed(signature: FileSignature | None, path: Path | str | None = None) -> bool:
    """True when the file was modified, created or removed since ``signature``.

    A None signature means the file was absent; ``path`` must then be given.
    Size and mtime are checked first; the hash only decides when both match.
    """

    if signature is None and not path:
        raise ValueError("file_has_changed needs a signature or a path")
    target = signature.path if signature is not None else Path(path)  # type: ignore[arg-type]
    current = try_snapshot(target)
    if signature is None or current is None:
        return (signature is None) != (current is None)
    if (current.size, current.modified_at) != (signature.size, signature.modified_at):
        return True
    return current.digest != signature.digest


def _digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
