import bz2
import io
import lzma
import os
import tarfile
import zipfile

import pytest

from vuldbgen.archive import (
    ExtractError,
    FileTooBigError,
    TarFileInfo,
    ensure_base_dir,
    extract_all_archive,
    extract_all_archive_to_files,
    make_tar,
    open_tar,
    selectively_extract_archive,
    selectively_extract_modules,
    selectively_extract_to_file,
    selectively_extract_to_files,
    unzip,
)
from vuldbgen.utils import gzip_bytes

FILES = [
    TarFileInfo("ubuntu_index.tb", b'{"N":"CVE-1"}\n'),
    TarFileInfo("dir/apps.tb", b"apps data"),
    TarFileInfo("empty.tb", b""),
]


def _tar():
    return make_tar(FILES)


def test_make_tar_members_and_mode():
    with open_tar(io.BytesIO(_tar())) as tar:
        members = list(tar)
    assert [m.name for m in members] == [f.name for f in FILES]
    assert all(m.mode == 0o655 and m.isfile() for m in members)


@pytest.mark.parametrize("compress", [lambda b: b, gzip_bytes, bz2.compress, lzma.compress])
def test_selective_extract_round_trip(compress):
    data = selectively_extract_archive(io.BytesIO(compress(_tar())), lambda n: True, 0)
    assert data == {f.name: f.body for f in FILES}


def test_selective_extract_filters_and_limits():
    data = selectively_extract_archive(
        io.BytesIO(_tar()), lambda n: n.endswith(".tb"), len(b"apps data") - 1
    )
    assert "dir/apps.tb" not in data
    assert data["ubuntu_index.tb"] == FILES[0].body


def test_prefix_dot_slash_is_trimmed():
    raw = make_tar([TarFileInfo("./x.tb", b"1")])
    assert selectively_extract_archive(io.BytesIO(raw), lambda n: True, 0) == {"x.tb": b"1"}


def test_invalid_archive_raises():
    with pytest.raises(ExtractError):
        selectively_extract_archive(io.BytesIO(b"x" * 600), lambda n: True, 0)


def test_extract_modules_by_suffix():
    data = selectively_extract_modules(io.BytesIO(_tar()), "apps.tb", 0)
    assert data == {"dir/apps.tb": b"apps data"}


def test_extract_modules_too_big():
    with pytest.raises(FileTooBigError):
        selectively_extract_modules(io.BytesIO(_tar()), "apps.tb", 2)


def test_extract_to_files_skips_empty(tmp_path):
    paths = selectively_extract_to_files(io.BytesIO(_tar()), str(tmp_path), lambda n: True, 0)
    assert set(paths) == {"ubuntu_index.tb", "dir/apps.tb"}
    for name, path in paths.items():
        with open(path, "rb") as fh:
            assert fh.read() == {f.name: f.body for f in FILES}[name]


def test_extract_to_file_flattens_names(tmp_path):
    files = selectively_extract_to_file(io.BytesIO(_tar()), lambda n: "apps" in n, str(tmp_path))
    assert files == {"dir/apps.tb": str(tmp_path) + "/dir_apps.tb"}
    assert (tmp_path / "dir_apps.tb").read_bytes() == b"apps data"


def test_extract_all_archive_renames_dot_files(tmp_path):
    raw = make_tar([TarFileInfo("conf/.hidden", b"abc"), TarFileInfo("a.txt", b"hello")])
    total = extract_all_archive(str(tmp_path), io.BytesIO(raw), 0)
    assert total == len(b"abc") + len(b"hello")
    assert (tmp_path / "conf" / "_.hidden").read_bytes() == b"abc"
    assert (tmp_path / "a.txt").read_bytes() == b"hello"
    assert os.stat(tmp_path / "a.txt").st_mode & 0o444 == 0o444


def test_extract_all_archive_too_big(tmp_path):
    with pytest.raises(FileTooBigError):
        extract_all_archive(str(tmp_path), io.BytesIO(_tar()), 3)


def test_extract_all_to_files_plain_and_encrypted(tmp_path):
    plain_dir = tmp_path / "plain"
    plain_dir.mkdir()
    raw = make_tar([TarFileInfo("a.tb", b"hello")])
    extract_all_archive_to_files(str(plain_dir) + "/", io.BytesIO(raw), 0, None)
    assert (plain_dir / "a.tb").read_bytes() == b"hello"

    enc_dir = tmp_path / "enc"
    enc_dir.mkdir()
    extract_all_archive_to_files(str(enc_dir) + "/", io.BytesIO(raw), 0, bytes(32))
    sealed = (enc_dir / "a.tb").read_bytes()
    assert len(sealed) == 16 + len(b"hello")
    assert sealed[16:] != b"hello"


def test_ensure_base_dir(tmp_path):
    target = tmp_path / "x" / "y" / "file.txt"
    ensure_base_dir(str(target))
    assert target.parent.is_dir()


def test_unzip_round_trip(tmp_path):
    src = tmp_path / "in.zip"
    with zipfile.ZipFile(src, "w") as zf:
        zf.writestr("pkg/", "")
        zf.writestr("pkg/a.json", b"{}")
        zf.writestr("top.txt", b"top")
    out = tmp_path / "out"
    unzip(str(src), str(out))
    assert (out / "pkg" / "a.json").read_bytes() == b"{}"
    assert (out / "top.txt").read_bytes() == b"top"


def test_unzip_rejects_escaping_paths(tmp_path):
    src = tmp_path / "evil.zip"
    with zipfile.ZipFile(src, "w") as zf:
        zf.writestr("../evil.txt", b"x")
    with pytest.raises(ValueError, match="illegal file path"):
        unzip(str(src), str(tmp_path / "out"))
    assert not (tmp_path / "evil.txt").exists()


def test_tar_of_real_tarfile_regular_only(tmp_path):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        d = tarfile.TarInfo("sub")
        d.type = tarfile.DIRTYPE
        tar.addfile(d)
        info = tarfile.TarInfo("sub/f.so")
        info.size = 2
        tar.addfile(info, io.BytesIO(b"ok"))
    data = selectively_extract_modules(io.BytesIO(buf.getvalue()), ".so", 0)
    assert data == {"sub/f.so": b"ok"}