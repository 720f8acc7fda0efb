"""In-memory collection of vulnerabilities, split and written as database files."""

from __future__ import annotations

import hashlib
import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .archive import TarFileInfo
from .dbfile import _marshal, create_db_file
from .models import (
    COMPACT_CVE_DB_NAME,
    REGULAR_CVE_DB_NAME,
    RHEL_CPE_MAP_FILE,
    AppModuleVul,
    DBFile,
    FeaFull,
    FeaShort,
    FeatureVersion,
    KeyVersion,
    RawFile,
    Vulnerability,
    VulFull,
    VulShort,
)
from .registry import Datastore

logger = logging.getLogger(__name__)

APPS_FILE = "apps.tb"
RAW_FILENAMES = (RHEL_CPE_MAP_FILE,)

# Namespace matched as a substring, with its index and full file names.
_DATABASES = (
    ("ubuntu", "ubuntu_index.tb", "ubuntu_full.tb"),
    ("debian", "debian_index.tb", "debian_full.tb"),
    ("centos", "centos_index.tb", "centos_full.tb"),
    ("alpine", "alpine_index.tb", "alpine_full.tb"),
    ("amzn", "amazon_index.tb", "amazon_full.tb"),
    ("oracle", "oracle_index.tb", "oracle_full.tb"),
    ("mariner", "mariner_index.tb", "mariner_full.tb"),
    ("sles", "suse_index.tb", "suse_full.tb"),
    ("photon", "photon_index.tb", "photon_full.tb"),
    ("rocky", "rocky_index.tb", "rocky_full.tb"),
    ("wolfi", "wolfi_index.tb", "wolfi_full.tb"),
    ("chainguard", "chainguard_index.tb", "chainguard_full.tb"),
)
# Older scanners only read the first databases; this list must not grow.
_COMPACT_COUNT = 4


def vul_to_short(vul: VulFull) -> VulShort:
    """Reduce a full record to its index form."""
    return VulShort(
        name=vul.name,
        namespace=vul.namespace,
        fixin=[FeaShort(name=f.name, version=f.version, min_ver=f.min_ver) for f in vul.fixed_in],
        cpes=list(vul.cpes),
    )


def vulnerability_to_full(vul: Vulnerability) -> VulFull:
    """Convert a fetched vulnerability to a full record, without its fixes."""
    return VulFull(
        name=vul.name,
        namespace=vul.namespace,
        description=vul.description,
        link=vul.link,
        severity=vul.severity,
        feed_rating=vul.feed_rating,
        cpes=list(vul.cpes),
        cves=[cve.name for cve in vul.cves],
        cvss_v2=vul.cvss_v2,
        cvss_v3=vul.cvss_v3,
        issued_date=vul.issued_date,
        last_mod_date=vul.last_mod_date,
    )


def feature_to_full(feature_version: FeatureVersion) -> FeaFull:
    """Convert a fixed package version to its stored form."""
    return FeaFull(
        name=feature_version.feature.name,
        version=str(feature_version.version),
        min_ver=str(feature_version.min_ver),
    )


def _rfc3339_now() -> str:
    now = datetime.now().astimezone()
    text = now.strftime("%Y-%m-%dT%H:%M:%S")
    offset = now.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass
class _DbBuffer:
    namespace: str
    index_file: str
    full_file: str
    index_lines: list[bytes] = field(default_factory=list)
    full_lines: list[bytes] = field(default_factory=list)

    @property
    def index(self) -> bytes:
        return b"".join(self.index_lines)

    @property
    def full(self) -> bytes:
        return b"".join(self.full_lines)


def _sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass
class MemDB(Datastore):
    """Collects vulnerabilities and writes the compact and regular database files."""

    tb_path: str = ""
    tmp_path: str = ""
    os_vuls: dict[str, VulFull] = field(default_factory=dict)
    app_vuls: list[AppModuleVul] = field(default_factory=list)
    raw_files: list[RawFile] = field(default_factory=list)
    keys: dict[str, str] = field(default_factory=dict)

    @classmethod
    def open(cls, path: str) -> MemDB:
        """Create a store writing its files with the prefix path."""
        try:
            tmp = tempfile.mkdtemp(prefix="cve")
        except OSError as exc:
            logger.error("Failed to create tmp cve directory", extra={"fields": {"error": exc}})
            raise
        return cls(tb_path=path, tmp_path=tmp)

    def __enter__(self) -> MemDB:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def insert_vulnerabilities(
        self,
        os_vuls: list[Vulnerability],
        app_vuls: list[AppModuleVul],
        raw_files: list[RawFile],
    ) -> None:
        """Store the vulnerabilities; a missing expected raw file is added empty."""
        for vul in os_vuls:
            full = vulnerability_to_full(vul)
            full.fixed_in.extend(feature_to_full(fx) for fx in vul.fixed_in)
            self.os_vuls[f"{full.namespace}:{full.name}"] = full
        self.app_vuls = list(app_vuls)
        self.raw_files = list(raw_files)
        present = {raw.name for raw in self.raw_files}
        self.raw_files.extend(
            RawFile(name=name, raw=b"") for name in RAW_FILENAMES if name not in present
        )

    def _split(self) -> tuple[list[_DbBuffer], bytes]:
        buffers = [_DbBuffer(*spec) for spec in _DATABASES]
        for vul in self.os_vuls.values():
            buf = next((b for b in buffers if b.namespace in vul.namespace), None)
            if buf is None:
                logger.error("No known namespace found: %s", vul.namespace)
                raise ValueError(f"No known namespace found: {vul.namespace}")
            buf.index_lines.append(_marshal(vul_to_short(vul).to_dict()) + b"\n")
            buf.full_lines.append(_marshal(vul.to_dict()) + b"\n")
        apps = b"".join(_marshal(v.to_dict()) + b"\n" for v in self.app_vuls)
        return buffers, apps

    def _db_file(
        self,
        name: str,
        version: str,
        buffers: list[_DbBuffer],
        apps: bytes,
        raw_files: list[RawFile],
        verbose: bool,
    ) -> DBFile:
        key = KeyVersion(version=version, update_time=_rfc3339_now(), keys=self.keys)
        files: list[TarFileInfo] = []
        for buf in buffers:
            index, full = buf.index, buf.full
            key.shas[buf.index_file] = _sha(index)
            key.shas[buf.full_file] = _sha(full)
            files.append(TarFileInfo(buf.index_file, index))
            files.append(TarFileInfo(buf.full_file, full))
            if verbose:
                logger.info("", extra={"fields": {"database": buf.namespace, "size": len(full)}})
        key.shas[APPS_FILE] = _sha(apps)
        files.append(TarFileInfo(APPS_FILE, apps))
        if verbose:
            logger.info("", extra={"fields": {"database": "apps", "size": len(apps)}})
        for raw in raw_files:
            files.append(TarFileInfo(raw.name, raw.raw))
            key.shas[raw.name] = _sha(raw.raw)
            logger.info("", extra={"fields": {"database": raw.name, "size": len(raw.raw)}})
        return DBFile(filename=self.tb_path + name, key=key, files=files)

    def update_db(self, version: str) -> list[DBFile]:
        """Write the compact and regular database files and return their descriptions."""
        try:
            buffers, apps = self._split()
        except ValueError:
            logger.error("Split database error")
            raise
        logger.info(
            "", extra={"fields": {"vuls": len(self.os_vuls), "appVuls": len(self.app_vuls)}}
        )
        compact = self._db_file(
            COMPACT_CVE_DB_NAME, version, buffers[:_COMPACT_COUNT], apps, [], False
        )
        regular = self._db_file(
            REGULAR_CVE_DB_NAME, version, buffers, apps, self.raw_files, True
        )
        for db_file in (compact, regular):
            create_db_file(db_file)
        return [compact, regular]

    def close(self) -> None:
        """Remove the temporary directory."""
        if self.tmp_path:
            shutil.rmtree(self.tmp_path, ignore_errors=True)