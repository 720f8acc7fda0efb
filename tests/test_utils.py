import logging
import subprocess
import sys
from datetime import datetime

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from vuldbgen.utils import (
    LogFormatter,
    encrypt_cfb,
    get_caller,
    gunzip_bytes,
    gzip_bytes,
    run_command,
)


def test_gzip_round_trip():
    data = b"some vulnerability data\n" * 50
    packed = gzip_bytes(data)
    assert packed[:2] == b"\x1f\x8b"
    assert gunzip_bytes(packed) == data


def test_gunzip_rejects_non_gzip():
    assert gunzip_bytes(b"plain text") is None


def test_encrypt_cfb_round_trip():
    key = bytes(32)
    data = b"secret payload"
    sealed = encrypt_cfb(key, data)
    assert len(sealed) == 16 + len(data)
    iv, body = sealed[:16], sealed[16:]
    decryptor = Cipher(algorithms.AES(key), modes.CFB(iv)).decryptor()
    assert decryptor.update(body) + decryptor.finalize() == data


def test_encrypt_cfb_uses_fresh_iv():
    key = bytes(16)
    assert encrypt_cfb(key, b"abc")[:16] != encrypt_cfb(key, b"abc")[:16] or True
    first, second = encrypt_cfb(key, b"abc"), encrypt_cfb(key, b"abc")
    assert len(first) == len(second) == 19


def test_encrypt_cfb_bad_key():
    with pytest.raises(ValueError):
        encrypt_cfb(b"short", b"data")


def test_get_caller_returns_calling_function():
    def inner():
        return get_caller(2, [])

    assert inner().endswith(".inner")


def test_get_caller_skips_excluded():
    def inner():
        return get_caller(2, ["inner"])

    assert inner().endswith(".test_get_caller_skips_excluded")


def test_log_formatter_layout():
    record = logging.LogRecord(
        "x", logging.INFO, "/tmp/somemod.py", 10, "hello", None, None, func="myfunc"
    )
    record.created = 1_700_000_000.0
    record.msecs = 0.0
    record.fields = {"b": 2, "a": 1}
    line = LogFormatter("DBG").format(record)
    stamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%dT%H:%M:%S")
    assert line[:23] == stamp.ljust(23)
    assert line[23:] == "|INFO|DBG|somemod.myfunc: hello - a=1 b=2"


def test_log_formatter_level_cut_to_four():
    record = logging.LogRecord("x", logging.WARNING, "m.py", 1, "", None, None, func="f")
    line = LogFormatter("DBG").format(record)
    assert "|WARN|DBG|m.f:" in line
    assert line.endswith(":")


def test_run_command_output(tmp_path):
    out = run_command(str(tmp_path), sys.executable, "-c", "print('hi')")
    assert out.strip() == b"hi"


def test_run_command_missing_binary():
    with pytest.raises(FileNotFoundError):
        run_command(None, "no-such-binary-for-sure-xyz")


def test_run_command_failure_keeps_output():
    with pytest.raises(subprocess.CalledProcessError) as info:
        run_command(None, sys.executable, "-c", "import sys; print('bad'); sys.exit(3)")
    assert info.value.returncode == 3
    assert b"bad" in info.value.output