"""Collection of application module vulnerabilities gathered from several feeds."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from .dbfile import FIRST_YEAR, parse_year
from .debug import debug_vuln
from .models import AppModuleVersion, AppModuleVul

logger = logging.getLogger(__name__)

CALIBRATION_FILE = "apps_calibration"

# Feeds sometimes keep CVEs that have been withdrawn.
WITHDRAWN_CVES = frozenset({"CVE-2021-23334", "CVE-2024-4109"})


def app_vul_key(vul: AppModuleVul) -> str:
    """Key under which a vulnerability is stored: module and vulnerability name."""
    return f"{vul.module_name}:{vul.vul_name}"


def _module_version(data: object) -> AppModuleVersion | None:
    if not isinstance(data, dict):
        return None
    op_code = data.get("O", "")
    version = data.get("V", "")
    if op_code is None:
        op_code = ""
    if version is None:
        version = ""
    if not isinstance(op_code, str) or not isinstance(version, str):
        return None
    return AppModuleVersion(op_code=op_code, version=version)


@dataclass
class AppVulCollection:
    """Application vulnerabilities keyed by module and name, plus calibration data."""

    vuls: dict[str, AppModuleVul] = field(default_factory=dict)
    calibration: dict[str, list[AppModuleVersion]] = field(default_factory=dict)
    cache: set[str] = field(default_factory=set)

    def add(self, vul: AppModuleVul) -> None:
        """Store a vulnerability, replacing any earlier one with the same key."""
        self.vuls[app_vul_key(vul)] = vul

    def load_calibration(self, path: str = CALIBRATION_FILE) -> int:
        """Read ``CVE:{"O":..,"V":..}`` lines of extra affected versions.

        Returns the number of entries loaded; a missing file loads nothing.
        """
        try:
            with open(path, encoding="utf-8") as handle:
                lines = handle.read().splitlines()
        except OSError as exc:
            logger.info("open apps_calibration fail", extra={"fields": {"error": exc}})
            return 0
        loaded = 0
        for line in lines:
            i = line.find(":")
            if i <= 0:
                continue
            try:
                data = json.loads(line[i + 1 :])
            except ValueError:
                continue
            version = _module_version(data)
            if version is None:
                continue
            self.calibration.setdefault(line[:i], []).append(version)
            loaded += 1
        return loaded

    def results(self) -> list[AppModuleVul]:
        """Return the vulnerabilities to publish.

        Withdrawn CVEs are dropped from the collection; CVEs older than the
        first supported year, or whose year cannot be read, are left out.
        CWE and GHSA entries are always kept.
        """
        kept: list[AppModuleVul] = []
        for key, vul in list(self.vuls.items()):
            if vul.vul_name in WITHDRAWN_CVES:
                del self.vuls[key]
                continue
            name = vul.vul_name
            if not name.startswith(("CWE-", "GHSA-")):
                dash = name.find("-")
                if dash != -1:
                    try:
                        year = parse_year(name[dash + 1 :])
                    except ValueError:
                        logger.error(
                            "Unable to parse year from CVE name",
                            extra={"fields": {"cve": name}},
                        )
                        continue
                    if year < FIRST_YEAR:
                        continue
            debug_vuln(vul, "app")
            kept.append(vul)
        return kept