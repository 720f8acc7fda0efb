"""Small shared helpers: compression, CFB encryption, log formatting, commands."""

from __future__ import annotations

import gzip
import inspect
import io
import logging
import os
import shutil
import subprocess
import zlib
from datetime import datetime

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

AES_BLOCK_SIZE = 16


def encrypt_cfb(key: bytes, data: bytes) -> bytes:
    """Encrypt data with AES-CFB; the random IV is prepended to the result."""
    iv = os.urandom(AES_BLOCK_SIZE)
    encryptor = Cipher(algorithms.AES(key), modes.CFB(iv)).encryptor()
    return iv + encryptor.update(data) + encryptor.finalize()


def gzip_bytes(data: bytes) -> bytes:
    """Compress data in gzip format."""
    return gzip.compress(data)


def gunzip_bytes(data: bytes) -> bytes | None:
    """Decompress gzip data; None when the header is not valid gzip.

    A stream that breaks off after a valid header yields what was read so far.
    """
    if len(data) < 2 or data[:2] != b"\x1f\x8b":
        return None
    out = bytearray()
    with gzip.GzipFile(fileobj=io.BytesIO(data)) as reader:
        try:
            while chunk := reader.read(64 * 1024):
                out += chunk
        except (OSError, EOFError, zlib.error):
            if not out:
                try:
                    reader.seek(0)
                except (OSError, EOFError, zlib.error):
                    return None
    return bytes(out)


def _frame_module_name(frame_info: inspect.FrameInfo) -> str:
    module = inspect.getmodule(frame_info.frame)
    if module is not None:
        return module.__name__
    return os.path.splitext(os.path.basename(frame_info.filename))[0]


def get_caller(skip: int, excludes: list[str]) -> str:
    """Name the first calling function, past ``skip`` frames, not matching excludes.

    With skip 1 the search starts at this function itself, with skip 2 at its caller.
    The result has the form ``module.function``.
    """
    stack = inspect.stack(context=0)
    try:
        for frame_info in stack[max(skip - 1, 0):]:
            module = _frame_module_name(frame_info)
            full = f"{module}.{frame_info.function}"
            if any(exclude in full for exclude in excludes):
                continue
            return f"{module.rsplit('.', 1)[-1]}.{frame_info.function}"
        return ""
    finally:
        del stack


class LogFormatter(logging.Formatter):
    """Formats records as ``time|LEVL|MODULE|caller: message - k=v ...``.

    Structured fields are taken from a ``fields`` mapping passed through ``extra``.
    """

    def __init__(self, module: str = "DBG") -> None:
        super().__init__()
        self.module = module

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%dT%H:%M:%S")
        millis = int(record.msecs)
        if millis:
            stamp += "." + f"{millis:03d}".rstrip("0")
        caller = f"{record.module}.{record.funcName}"
        level = record.levelname.upper()[:4]
        text = f"{stamp:<23}|{level}|{self.module}|{caller}:"
        message = record.getMessage()
        if message:
            text += " " + message
        fields = getattr(record, "fields", None) or {}
        if fields:
            text += " - " + " ".join(f"{k}={fields[k]}" for k in sorted(fields))
        return text


def run_command(directory: str | None, binary: str, *args: str) -> bytes:
    """Run a binary in a directory and return its combined stdout and stderr.

    Raises FileNotFoundError when the binary is not on the path and
    subprocess.CalledProcessError (with the output attached) when it fails.
    """
    if shutil.which(binary) is None:
        raise FileNotFoundError(f"executable file not found in $PATH: {binary}")
    result = subprocess.run(
        [binary, *args],
        cwd=directory,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        check=True,
    )
    return result.stdout