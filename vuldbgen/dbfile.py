"""Encrypted database files: AES-GCM sealing, file layout and CVE year parsing."""

from __future__ import annotations

import json
import logging
import os
import struct
from typing import Any

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .archive import make_tar
from .models import DBFile
from .utils import gzip_bytes

logger = logging.getLogger(__name__)

FIRST_YEAR = 2014

_NONCE_SIZE = 12
_CVE_DB_ENCRYPT_KEY = bytes(32)
_JSON_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def encrypt(plaintext: bytes, key: bytes) -> bytes:
    """Seal plaintext with AES-GCM; the random nonce is prepended to the result."""
    aead = AESGCM(key)
    nonce = os.urandom(_NONCE_SIZE)
    return nonce + aead.encrypt(nonce, plaintext, None)


def decrypt(ciphertext: bytes, key: bytes) -> bytes:
    """Open data sealed by encrypt.

    Raises ValueError for a bad key or short input and InvalidTag when the
    data does not authenticate.
    """
    aead = AESGCM(key)
    if len(ciphertext) < _NONCE_SIZE:
        raise ValueError("ciphertext too short")
    return aead.decrypt(ciphertext[:_NONCE_SIZE], ciphertext[_NONCE_SIZE:], None)


def _normalize(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    return value


def _marshal(obj: Any) -> bytes:
    """Serialize to compact JSON, writing whole floats without a fraction."""
    text = json.dumps(_normalize(obj), separators=(",", ":"), ensure_ascii=False)
    for char, escaped in _JSON_ESCAPES:
        text = text.replace(char, escaped)
    return text.encode("utf-8")


def create_db_file(db_file: DBFile) -> int:
    """Write the database file and return its size in bytes.

    Layout: a big-endian 32-bit header length, the JSON header, then the
    AES-GCM sealed gzip of a tar holding the files.
    """
    logger.info("Create database file", extra={"fields": {"file": db_file.filename}})
    header = _marshal(db_file.key.to_dict())
    try:
        archive = make_tar(db_file.files)
    except (OSError, ValueError) as exc:
        logger.error("Make tar file error", extra={"fields": {"error": exc}})
        raise
    sealed = encrypt(gzip_bytes(archive), _CVE_DB_ENCRYPT_KEY)
    payload = struct.pack(">i", len(header)) + header + sealed
    try:
        with open(db_file.filename, "wb") as out:
            out.write(payload)
    except OSError as exc:
        logger.error("Create db file fail", extra={"fields": {"error": exc}})
        raise
    logger.info(
        "Create database done",
        extra={"fields": {"file": db_file.filename, "size": len(payload)}},
    )
    return len(payload)


def parse_year(name: str) -> int:
    """Parse the leading decimal digits of name as a year."""
    end = next((i for i, ch in enumerate(name) if not ch.isdecimal()), len(name))
    prefix = name[:end]
    if not prefix or not prefix.isascii():
        raise ValueError(f"invalid year in {name!r}")
    return int(prefix)