"""Debian-style package versions with RHEL release suffixes."""

from __future__ import annotations

import re
from dataclasses import dataclass

_VERSION_SYMBOLS = frozenset(".-+~:_")
_REVISION_SYMBOLS = frozenset(".+~_")
_RC_RE = re.compile(r"(rc[0-9]|pre[0-9])")
_EPOCH_RE = re.compile(r"[+-]?[0-9]+")

_MIN_MARK = "#MINV#"
_MAX_MARK = "#MAXV#"


class InvalidVersionError(ValueError):
    """A version string could not be parsed."""


def _as_bytes_text(text: str) -> str:
    # Versions are compared byte by byte; map each byte onto one character.
    return text.encode("utf-8").decode("latin-1")


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def _valid_chars(text: str, symbols: frozenset[str]) -> bool:
    return all(
        _is_digit(ch) or ch.isalpha() or ch in symbols for ch in _as_bytes_text(text)
    )


@dataclass(frozen=True)
class Version:
    """A parsed package version: epoch, upstream version, revision and el suffix."""

    epoch: int = 0
    version: str = ""
    revision: str = ""
    el_ver: str = ""

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse a version string, raising InvalidVersionError when malformed."""
        text = text.strip()
        if not text:
            raise InvalidVersionError("Version string is empty")
        if text == _MAX_MARK:
            return MAX_VERSION
        if text == _MIN_MARK:
            return MIN_VERSION

        epoch = 0
        sep_epoch = text.find(":")
        if sep_epoch > -1:
            epoch_text = text[:sep_epoch]
            if not _EPOCH_RE.fullmatch(epoch_text):
                raise InvalidVersionError("epoch in version is not a number")
            epoch = int(epoch_text)
            if epoch < 0:
                raise InvalidVersionError("epoch in version is negative")

        el_ver = ""
        sep_revision = text.rfind("-")
        if sep_revision > -1:
            upstream = text[sep_epoch + 1 : sep_revision]
            revision = text[sep_revision + 1 :]
            el = revision.rfind(".el")
            if el > -1:
                revision, el_ver = revision[:el], revision[el + 1 :]
        else:
            upstream = text[sep_epoch + 1 :]
            revision = ""
            el = upstream.rfind(".el")
            if el > -1:
                upstream, el_ver = upstream[:el], upstream[el + 1 :]

        if not upstream:
            raise InvalidVersionError("No version")
        if not _valid_chars(upstream, _VERSION_SYMBOLS):
            raise InvalidVersionError("invalid character in version")
        if not _valid_chars(revision, _REVISION_SYMBOLS):
            raise InvalidVersionError("invalid character in revision")
        if not _valid_chars(el_ver, _REVISION_SYMBOLS):
            raise InvalidVersionError("invalid character in revision")
        if text in ("NA", "N/A"):
            raise InvalidVersionError("version is not available")

        return cls(epoch=epoch, version=upstream, revision=revision, el_ver=el_ver)

    def compare(self, other: Version) -> int:
        """Return -1, 0 or 1 as this version sorts before, equal to or after other."""
        if self == other:
            return 0
        if self == MIN_VERSION or other == MAX_VERSION:
            return -1
        if other == MIN_VERSION or self == MAX_VERSION:
            return 1
        if self.epoch != other.epoch:
            return 1 if self.epoch > other.epoch else -1
        for mine, theirs in (
            (self.version, other.version),
            (self.revision, other.revision),
        ):
            rc = _verrevcmp(mine, theirs)
            if rc:
                return _signum(rc)
        return _signum(_verrevcmp(self.el_ver, other.el_ver))

    def __lt__(self, other: Version) -> bool:
        return self.compare(other) < 0

    def __le__(self, other: Version) -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: Version) -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: Version) -> bool:
        return self.compare(other) >= 0

    def __str__(self) -> str:
        text = f"{self.epoch}:" if self.epoch else ""
        text += self.version
        if self.revision:
            text += "-" + self.revision
        if self.el_ver:
            text += "." + self.el_ver
        return text


MIN_VERSION = Version(version=_MIN_MARK)
MAX_VERSION = Version(version=_MAX_MARK)


def new_version_unsafe(text: str) -> Version:
    """Parse a version, returning an empty Version when parsing fails."""
    try:
        return Version.parse(text)
    except InvalidVersionError:
        return Version()


def _order(ch: str) -> int:
    if _is_digit(ch):
        return 0
    if ch.isalpha():
        return ord(ch)
    if ch == "~":
        return -1
    return ord(ch) + 256


def _signum(value: int) -> int:
    return (value > 0) - (value < 0)


def _verrevcmp(left: str, right: str) -> int:
    a, b = _as_bytes_text(left), _as_bytes_text(right)
    la, lb = len(a), len(b)
    i = j = 0
    while i < la or j < lb:
        first_diff = 0
        while (i < la and not _is_digit(a[i])) or (j < lb and not _is_digit(b[j])):
            ac = _order(a[i]) if i < la else 0
            bc = _order(b[j]) if j < lb else 0

            # '.' sorts after '_' in release suffixes such as el7.4 vs el7_2.2
            if ac == 302 and bc == 351:
                return 1
            if ac == 351 and bc == 302:
                return -1

            if ac != bc:
                # pre-releases such as 1.6_rc1 sort before the release
                if ac > bc and bc == 0 and _RC_RE.search(a, i + 1):
                    return -1
                if ac < bc and ac == 0 and _RC_RE.search(b, j + 1):
                    return 1
                return ac - bc
            i += 1
            j += 1

        while i < la and a[i] == "0":
            i += 1
        while j < lb and b[j] == "0":
            j += 1
        while i < la and _is_digit(a[i]) and j < lb and _is_digit(b[j]):
            if first_diff == 0:
                first_diff = ord(a[i]) - ord(b[j])
            i += 1
            j += 1
        if i < la and _is_digit(a[i]):
            return 1
        if j < lb and _is_digit(b[j]):
            return -1
        if first_diff:
            return first_diff
    return 0