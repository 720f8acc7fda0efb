"""Debug filters that trace selected vulnerabilities through the pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .models import AppModuleVul, Vulnerability

logger = logging.getLogger(__name__)


@dataclass
class DebugFilter:
    """Which vulnerabilities to trace."""

    enabled: bool = False
    cves: set[str] = field(default_factory=set)

    def matches(self, name: str) -> bool:
        return self.enabled and name in self.cves


DEBUGS = DebugFilter()


def first_n(text: str, n: int) -> str:
    """Return text cut to n characters, with an ellipsis when cut."""
    if len(text) > n:
        return text[:n] + "..."
    return text


def parse_debug_filters(text: str) -> DebugFilter:
    """Enable debugging with the filters given as comma separated key=value tokens."""
    DEBUGS.enabled = True
    DEBUGS.cves = set()
    for token in text.split(","):
        kvs = token.split("=")
        if len(kvs) >= 2 and kvs[0] == "v":
            DEBUGS.cves.update(kvs[1].split(","))
            logger.debug(
                "vulnerability filter", extra={"fields": {"vuls": sorted(DEBUGS.cves)}}
            )
    return DEBUGS


def _rfc3339(value: datetime | None) -> str:
    if value is None:
        return "0001-01-01T00:00:00Z"
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def debug_vuln(item: Any, msg: str) -> bool:
    """Log the item when it passes the debug filter; return whether it was logged."""
    if isinstance(item, Vulnerability):
        if not DEBUGS.matches(item.name):
            return False
        fields = {
            "name": item.name,
            "distro": item.namespace,
            "severity": item.severity.value if item.severity else "",
            "v2": item.cvss_v2,
            "v3": item.cvss_v3,
            "rate": item.feed_rating,
            "fix": [
                f"{fv.feature.namespace}/{fv.feature.name}:{fv.version}"
                for fv in item.fixed_in
            ],
            "cpes": item.cpes,
            "pub": _rfc3339(item.issued_date),
            "lastMod": _rfc3339(item.last_mod_date),
            "description": first_n(item.description, 64),
            "link": item.link,
        }
    elif isinstance(item, AppModuleVul):
        if not DEBUGS.matches(item.vul_name):
            return False
        fields = {
            "name": item.vul_name,
            "module": item.module_name,
            "severity": item.severity.value if item.severity else "",
            "v2": item.score,
            "v3": item.score_v3,
            "pub": _rfc3339(item.issued_date),
            "lastMod": _rfc3339(item.last_mod_date),
            "description": first_n(item.description, 64),
            "link": item.link,
        }
    else:
        return False
    logger.debug(msg, extra={"fields": fields})
    return True