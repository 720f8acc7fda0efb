"""Core data model: priorities, errors and the vulnerability records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from .version import Version

COMPACT_CVE_DB_NAME = "cvedb.compact"
REGULAR_CVE_DB_NAME = "cvedb.regular"
CVE_SOURCE_ROOT = "vul-source/"
RHEL_CPE_MAP_FILE = "rhel-cpe.map"

UBUNTU_RELEASES_MAPPING: dict[str, str] = {
    "upstream": "upstream",
    "precise": "12.04",
    "precise/esm": "12.04",
    "quantal": "12.10",
    "raring": "13.04",
    "trusty": "14.04",
    "trusty/esm": "14.04",
    "utopic": "14.10",
    "vivid": "15.04",
    "wily": "15.10",
    "xenial": "16.04",
    "esm-infra/xenial": "16.04",
    "yakkety": "16.10",
    "zesty": "17.04",
    "artful": "17.10",
    "bionic": "18.04",
    "cosmic": "18.10",
    "disco": "19.04",
    "eoan": "19.10",
    "focal": "20.04",
    "groovy": "20.10",
    "hirsute": "21.04",
    "impish": "21.10",
    "jammy": "22.04",
    "kinetic": "22.10",
    "lunar": "23.04",
    "mantic": "23.10",
    "noble": "24.04",
    "esm-apps/bionic": "18.04",
    "esm-apps/focal": "20.04",
    "esm-apps/jammy": "22.04",
    "esm-apps/noble": "24.04",
}

DEBIAN_RELEASES_MAPPING: dict[str, str] = {
    "squeeze": "6",
    "wheezy": "7",
    "jessie": "8",
    "stretch": "9",
    "buster": "10",
    "bullseye": "11",
    "bookworm": "12",
    "trixie": "13",
    "forky": "14",
    "sid": "unstable",
    "oldoldstable": "7",
    "oldstable": "8",
    "stable": "9",
    "testing": "10",
    "unstable": "unstable",
}


class Priority(str, Enum):
    """Vulnerability priority, ordered from least to most severe."""

    UNKNOWN = "Unknown"
    NEGLIGIBLE = "Negligible"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"
    DEFCON1 = "Defcon1"

    def compare(self, other: Priority | str) -> int:
        """Return the difference in rank between this priority and another."""
        return _priority_rank(self) - _priority_rank(other)


def _priority_rank(value: Priority | str) -> int:
    members = list(Priority)
    try:
        return members.index(Priority(value))
    except ValueError:
        return len(members)


class FilesystemError(Exception):
    """A filesystem interaction failed."""

    def __init__(self, message: str = "something went wrong when interacting with the fs"):
        super().__init__(message)


class CouldNotDownloadError(Exception):
    """A download failed."""

    def __init__(self, message: str = "could not download requested resource"):
        super().__init__(message)


class NotFoundError(Exception):
    """A resource could not be found."""

    def __init__(self, message: str = "the resource cannot be found"):
        super().__init__(message)


class CouldNotParseError(Exception):
    """A fetcher failed to parse its update data."""

    def __init__(self, message: str = "updater/fetchers: could not parse"):
        super().__init__(message)


_ZERO_TIME = "0001-01-01T00:00:00Z"
_TIME_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})$"
)


def _format_time(value: datetime | None) -> str:
    if value is None:
        return _ZERO_TIME
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _parse_time(text: str | None) -> datetime | None:
    if not text or text == _ZERO_TIME:
        return None
    match = _TIME_RE.match(text)
    if match is None:
        raise ValueError(f"invalid time: {text!r}")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    fraction, zone = match.group(7), match.group(8)
    micro = int((fraction[1:] + "000000")[:6]) if fraction else 0
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(year, month, day, hour, minute, second, micro, tzinfo=tz)


def _severity_text(value: Priority | None) -> str:
    return value.value if value is not None else ""


def _priority_from(value: str | None) -> Priority | None:
    return Priority(value) if value else None


@dataclass
class CVSS:
    vectors: str = ""
    score: float = 0.0


def _cvss_to_dict(cvss: CVSS) -> dict[str, Any]:
    return {"Vectors": cvss.vectors, "Score": cvss.score}


@dataclass
class NVDVulnerableVersion:
    start_including: str = ""
    start_excluding: str = ""
    end_including: str = ""
    end_excluding: str = ""


@dataclass
class NVDMetadata:
    description: str = ""
    severity: Priority | None = None
    cvss_v2: CVSS = field(default_factory=CVSS)
    cvss_v3: CVSS = field(default_factory=CVSS)
    vuln_versions: list[NVDVulnerableVersion] = field(default_factory=list)
    published_date: datetime | None = None
    last_modified_date: datetime | None = None
    link: str = ""


@dataclass
class KeyVersion:
    version: str = ""
    update_time: str = ""
    keys: dict[str, str] = field(default_factory=dict)
    shas: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "Version": self.version,
            "UpdateTime": self.update_time,
            "Keys": dict(sorted(self.keys.items())),
            "Shas": dict(sorted(self.shas.items())),
        }


@dataclass
class DBFile:
    filename: str = ""
    key: KeyVersion = field(default_factory=KeyVersion)
    files: list = field(default_factory=list)


@dataclass
class FeaShort:
    name: str = ""
    version: str = ""
    min_ver: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"N": self.name, "V": self.version, "MV": self.min_ver}


@dataclass
class VulShort:
    name: str = ""
    namespace: str = ""
    fixin: list[FeaShort] = field(default_factory=list)
    cpes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "N": self.name,
            "NS": self.namespace,
            "Fixin": [f.to_dict() for f in self.fixin],
            "CPE": list(self.cpes),
        }


@dataclass
class FeaFull:
    name: str = ""
    version: str = ""
    min_ver: str = ""
    added_by: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"N": self.name, "V": self.version, "MV": self.min_ver, "A": self.added_by}


@dataclass
class VulFull:
    name: str = ""
    namespace: str = ""
    description: str = ""
    link: str = ""
    severity: Priority | None = None
    cvss_v2: CVSS = field(default_factory=CVSS)
    cvss_v3: CVSS = field(default_factory=CVSS)
    fixed_by: str = ""
    fixed_in: list[FeaFull] = field(default_factory=list)
    cpes: list[str] = field(default_factory=list)
    cves: list[str] = field(default_factory=list)
    feed_rating: str = ""
    issued_date: datetime | None = None
    last_mod_date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "N": self.name,
            "NS": self.namespace,
            "D": self.description,
            "L": self.link,
            "S": _severity_text(self.severity),
            "C2": _cvss_to_dict(self.cvss_v2),
            "C3": _cvss_to_dict(self.cvss_v3),
            "FB": self.fixed_by,
            "FI": [f.to_dict() for f in self.fixed_in],
        }
        if self.cpes:
            data["CPE"] = list(self.cpes)
        if self.cves:
            data["CVE"] = list(self.cves)
        if self.feed_rating:
            data["RATE"] = self.feed_rating
        data["Issue"] = _format_time(self.issued_date)
        data["LastMod"] = _format_time(self.last_mod_date)
        return data


@dataclass
class AppModuleVersion:
    op_code: str = ""
    version: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"O": self.op_code, "V": self.version}


def _module_version_from(data: dict[str, Any]) -> AppModuleVersion:
    return AppModuleVersion(op_code=data.get("O") or "", version=data.get("V") or "")


@dataclass
class AppModuleVul:
    vul_name: str = ""
    app_name: str = ""
    module_name: str = ""
    description: str = ""
    link: str = ""
    score: float = 0.0
    vectors: str = ""
    score_v3: float = 0.0
    vectors_v3: str = ""
    severity: Priority | None = None
    affected_ver: list[AppModuleVersion] = field(default_factory=list)
    fixed_ver: list[AppModuleVersion] = field(default_factory=list)
    unaffected_ver: list[AppModuleVersion] = field(default_factory=list)
    issued_date: datetime | None = None
    last_mod_date: datetime | None = None
    cves: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "VN": self.vul_name,
            "AN": self.app_name,
            "MN": self.module_name,
            "D": self.description,
            "L": self.link,
            "SC": self.score,
            "VV2": self.vectors,
            "SC3": self.score_v3,
            "VV3": self.vectors_v3,
            "SE": _severity_text(self.severity),
            "AV": [v.to_dict() for v in self.affected_ver],
            "FV": [v.to_dict() for v in self.fixed_ver],
            "UV": [v.to_dict() for v in self.unaffected_ver],
            "Issue": _format_time(self.issued_date),
            "LastMod": _format_time(self.last_mod_date),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppModuleVul:
        """Build a record from its serialized form; the CVE list is not serialized."""
        return cls(
            vul_name=data.get("VN") or "",
            app_name=data.get("AN") or "",
            module_name=data.get("MN") or "",
            description=data.get("D") or "",
            link=data.get("L") or "",
            score=float(data.get("SC") or 0.0),
            vectors=data.get("VV2") or "",
            score_v3=float(data.get("SC3") or 0.0),
            vectors_v3=data.get("VV3") or "",
            severity=_priority_from(data.get("SE")),
            affected_ver=[_module_version_from(v) for v in data.get("AV") or []],
            fixed_ver=[_module_version_from(v) for v in data.get("FV") or []],
            unaffected_ver=[_module_version_from(v) for v in data.get("UV") or []],
            issued_date=_parse_time(data.get("Issue")),
            last_mod_date=_parse_time(data.get("LastMod")),
        )


@dataclass
class Feature:
    name: str = ""
    namespace: str = ""


@dataclass
class FeatureVersion:
    name: str = ""
    feature: Feature = field(default_factory=Feature)
    version: Version = field(default_factory=Version)
    min_ver: Version = field(default_factory=Version)


@dataclass
class CVE:
    name: str = ""
    cvss_v2: CVSS = field(default_factory=CVSS)
    cvss_v3: CVSS = field(default_factory=CVSS)


@dataclass
class Vulnerability:
    name: str = ""
    namespace: str = ""
    description: str = ""
    link: str = ""
    severity: Priority | None = None
    cvss_v2: CVSS = field(default_factory=CVSS)
    cvss_v3: CVSS = field(default_factory=CVSS)
    issued_date: datetime | None = None
    last_mod_date: datetime | None = None
    cves: list[CVE] = field(default_factory=list)
    fixed_in: list[FeatureVersion] = field(default_factory=list)
    cpes: list[str] = field(default_factory=list)
    feed_rating: str = ""


@dataclass
class RawFile:
    name: str = ""
    raw: bytes = b""