"""Reading and writing tar archives (plain, gzip, bzip2 or xz) and zip files."""

from __future__ import annotations

import bz2
import io
import logging
import lzma
import os
import stat
import tarfile
import tempfile
import zipfile
import zlib
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import BinaryIO

from .utils import encrypt_cfb

logger = logging.getLogger(__name__)

_READ_ERRORS = (tarfile.TarError, OSError, EOFError, zlib.error, lzma.LZMAError)


class ExtractError(Exception):
    """The archive could not be extracted."""

    def __init__(self, message: str = "could not extract the archive"):
        super().__init__(message)


class FileTooBigError(Exception):
    """A file in the archive is larger than allowed."""

    def __init__(
        self,
        message: str = "could not extract one or more files from the archive: file too big",
    ):
        super().__init__(message)


class WriteToDiskError(Exception):
    """An extracted file could not be written."""

    def __init__(self, message: str = "could not write to disk"):
        super().__init__(message)


@dataclass
class TarFileInfo:
    name: str
    body: bytes


def open_tar(stream: BinaryIO) -> tarfile.TarFile:
    """Open a tar stream, detecting gzip, bzip2 and xz compression by magic number."""
    try:
        return tarfile.open(fileobj=stream, mode="r|*")
    except _READ_ERRORS as exc:
        raise ExtractError() from exc


def _members(stream: BinaryIO) -> Iterator[tuple[tarfile.TarFile, tarfile.TarInfo, str]]:
    with open_tar(stream) as tar:
        members = iter(tar)
        while True:
            try:
                member = next(members)
            except StopIteration:
                return
            except _READ_ERRORS as exc:
                logger.error("tar read failed", extra={"fields": {"error": exc}})
                raise ExtractError() from exc
            yield tar, member, member.name.removeprefix("./")


def _read(tar: tarfile.TarFile, member: tarfile.TarInfo) -> bytes:
    if not member.isfile():
        return b""
    try:
        handle = tar.extractfile(member)
        return handle.read() if handle is not None else b""
    except _READ_ERRORS as exc:
        raise ExtractError() from exc


def _is_extractable(member: tarfile.TarInfo) -> bool:
    return member.isfile() or member.islnk() or member.issym()


def make_tar(files: list[TarFileInfo]) -> bytes:
    """Build an uncompressed tar archive holding the given files."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for item in files:
            info = tarfile.TarInfo(item.name)
            info.mode = 0o655
            info.type = tarfile.REGTYPE
            info.size = len(item.body)
            tar.addfile(info, io.BytesIO(item.body))
    return buf.getvalue()


def selectively_extract_archive(
    stream: BinaryIO, selected: Callable[[str], bool], max_file_size: int
) -> dict[str, bytes]:
    """Read the selected files into memory, skipping those over the size limit."""
    data: dict[str, bytes] = {}
    for tar, member, name in _members(stream):
        if not (selected(name) and _is_extractable(member)):
            continue
        if max_file_size > 0 and member.size > max_file_size:
            logger.error("file too big", extra={"fields": {"size": member.size, "filename": name}})
            continue
        data[name] = _read(tar, member)
    return data


def selectively_extract_to_files(
    stream: BinaryIO, directory: str, selected: Callable[[str], bool], max_file_size: int
) -> dict[str, str]:
    """Write the selected files to temporary files in directory; map name to path."""
    paths: dict[str, str] = {}
    for tar, member, name in _members(stream):
        if not (selected(name) and _is_extractable(member)):
            continue
        if max_file_size > 0 and member.size > max_file_size:
            logger.error("file too big", extra={"fields": {"size": member.size, "filename": name}})
            continue
        body = _read(tar, member)
        try:
            fd, tmp = tempfile.mkstemp(dir=directory, prefix="extract")
        except OSError as exc:
            logger.error("write to temp file fail", extra={"fields": {"err": exc, "filename": name}})
            continue
        with os.fdopen(fd, "wb") as out:
            out.write(body)
        if not body:
            os.remove(tmp)
            continue
        paths[name] = tmp
    return paths


def ensure_base_dir(path: str) -> None:
    """Create the directory that will hold path, if it is missing."""
    base = os.path.dirname(path) or "."
    if not os.path.isdir(base):
        os.makedirs(base, 0o755, exist_ok=True)


def _write_file(path: str, data: bytes, mode: int) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as out:
        out.write(data)


def extract_all_archive_to_files(
    path: str, stream: BinaryIO, max_file_size: int, encrypt_key: bytes | None
) -> None:
    """Write every regular file to ``path + name``, optionally encrypted, read-only."""
    for tar, member, name in _members(stream):
        if max_file_size > 0 and member.size > max_file_size:
            raise FileTooBigError()
        if not member.isfile():
            continue
        data = _read(tar, member)
        if encrypt_key is not None:
            data = encrypt_cfb(encrypt_key, data)
        _write_file(path + name, data, 0o400)


def _safe_relative(name: str) -> str:
    parts = ["_" + part if len(part) > 1 and part.startswith(".") else part
             for part in name.split("/")]
    return "/".join(parts).lstrip("/")


def extract_all_archive(dst: str, stream: BinaryIO, max_file_size: int) -> int:
    """Extract directories and regular files under dst; return the total size.

    Path components starting with a dot get an underscore prefix.
    """
    total = 0
    for tar, member, _ in _members(stream):
        target = os.path.normpath(os.path.join(dst, _safe_relative(member.name)))
        if max_file_size > 0 and member.size > max_file_size:
            raise FileTooBigError()
        total += member.size
        if member.isdir():
            if not os.path.exists(target):
                os.makedirs(target, 0o755)
            try:
                os.chmod(target, (member.mode & 0o7777) | 0o755)
            except OSError as exc:
                logger.error("chmod", extra={"fields": {"err": exc, "path": member.name}})
        elif member.isfile():
            ensure_base_dir(target)
            with open(target, "wb") as out:
                out.write(_read(tar, member))
            try:
                os.chmod(target, (member.mode & 0o7777) | 0o444)
            except OSError as exc:
                logger.error("chmod", extra={"fields": {"err": exc, "path": member.name}})
    return total


def selectively_extract_modules(
    stream: BinaryIO, suffix: str, max_file_size: int
) -> dict[str, bytes]:
    """Read every regular file whose name ends with suffix."""
    data: dict[str, bytes] = {}
    for tar, member, name in _members(stream):
        if not name.endswith(suffix):
            continue
        if max_file_size > 0 and member.size > max_file_size:
            raise FileTooBigError()
        if member.isfile():
            data[name] = _read(tar, member)
    return data


def selectively_extract_to_file(
    stream: BinaryIO, selected: Callable[[str], bool], directory: str
) -> dict[str, str]:
    """Write selected files flat into directory, slashes replaced by underscores."""
    files: dict[str, str] = {}
    for tar, member, name in _members(stream):
        if not (selected(name) and _is_extractable(member)):
            continue
        target = directory + "/" + name.replace("/", "_")
        try:
            with open(target, "wb") as out:
                out.write(_read(tar, member))
        except OSError as exc:
            raise WriteToDiskError() from exc
        files[name] = target
    return files


def _zip_mode(info: zipfile.ZipInfo) -> int:
    if info.create_system == 3 and info.external_attr >> 16:
        return info.external_attr >> 16
    mode = 0o444 if info.external_attr & 0x01 else 0o666
    if info.is_dir():
        mode |= stat.S_IFDIR | 0o111
    return mode


def unzip(src: str, dest: str) -> None:
    """Extract a zip file into dest, refusing entries that escape it."""
    root = os.path.normpath(dest) + os.sep
    with zipfile.ZipFile(src) as archive:
        for info in archive.infolist():
            fpath = os.path.normpath(os.path.join(dest, info.filename))
            if not fpath.startswith(root):
                raise ValueError(f"{fpath}: illegal file path")
            mode = _zip_mode(info)
            if info.is_dir() or stat.S_ISDIR(mode):
                os.makedirs(fpath, exist_ok=True)
                continue
            if stat.S_IFMT(mode) not in (0, stat.S_IFREG):
                continue
            os.makedirs(os.path.dirname(fpath), exist_ok=True)
            fd = os.open(fpath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
                         (mode & 0o7777) | 0o444)
            with os.fdopen(fd, "wb") as out, archive.open(info) as src_file:
                while chunk := src_file.read(64 * 1024):
                    out.write(chunk)


__all__ = [
    "ExtractError",
    "FileTooBigError",
    "WriteToDiskError",
    "TarFileInfo",
    "open_tar",
    "make_tar",
    "selectively_extract_archive",
    "selectively_extract_to_files",
    "ensure_base_dir",
    "extract_all_archive_to_files",
    "extract_all_archive",
    "selectively_extract_modules",
    "selectively_extract_to_file",
    "unzip",
    "bz2",
]