"""OpenSSL vulnerability list parsed from the project's advisory page."""

from __future__ import annotations

import logging
import re
import urllib.request

from .appvuls import AppVulCollection
from .models import AppModuleVersion, AppModuleVul, CouldNotDownloadError, CouldNotParseError, Priority

logger = logging.getLogger(__name__)

OPENSSL_URI = "https://www.openssl.org/news/vulnerabilities.html"

_CVE_NAME_RE = re.compile(r'="(.*)">CVE-([0-9\-]+)')
_CVE_RECORD_LINK_RE = re.compile(r'="(.*) target(.*)>CVE Record')
_VER_RE = re.compile(
    r"<li>from\s*\n*([0-9a-z.\-\s]+) before\s*\n*([0-9a-z.\-\s]+)</li>"
)
_SEVERITY_RE = re.compile(
    r"<span[^>]*>\s*Severity\s*</span>\s*</div>\s*<div[^>]*>\s*([A-Za-z]+)\s*</div>"
)
_DESCRIPTION_RE = re.compile(r"<p>([\s\S]+)</p>")

_SEVERITIES = {
    "Critical": Priority.CRITICAL,
    "High": Priority.HIGH,
    "Moderate": Priority.MEDIUM,
    "Low": Priority.LOW,
}


def get_openssl_vul_version(
    cve: str, text: str
) -> tuple[list[AppModuleVersion], list[AppModuleVersion]]:
    """Return the fixed and affected versions from ``from X before Y`` items.

    Raises ValueError when the text holds no version range.
    """
    fixed: list[AppModuleVersion] = []
    affected: list[AppModuleVersion] = []
    for i, match in enumerate(_VER_RE.finditer(text)):
        since, before = match.group(1), match.group(2).strip()
        fixed.append(AppModuleVersion(version=before))
        start = since.removeprefix("since ").strip()
        affected.append(AppModuleVersion(op_code="lt" if i == 0 else "orlt", version=before))
        affected.append(AppModuleVersion(op_code="gteq", version=start))
    if not fixed:
        raise ValueError(f"No version info is found for {cve}")
    return fixed, affected


def _parse_entry(chunk: str) -> AppModuleVul | None:
    line = chunk.strip("\n")
    name = _CVE_NAME_RE.search(line)
    if name is None:
        return None
    link = _CVE_RECORD_LINK_RE.search(line)
    if link is None:
        return None
    vul_name = "CVE-" + name.group(2)
    try:
        fixed, affected = get_openssl_vul_version(vul_name, line)
    except ValueError as exc:
        logger.error("", extra={"fields": {"error": exc}})
        return None
    severity = _SEVERITY_RE.search(line)
    if severity is None:
        return None
    description = _DESCRIPTION_RE.search(line)
    if description is None:
        logger.error("No description: %s", line)
        return None
    priority = _SEVERITIES.get(severity.group(1))
    if priority is None:
        return None
    return AppModuleVul(
        vul_name=vul_name,
        app_name="openssl",
        module_name="openssl",
        description=description.group(1),
        link=link.group(1).replace('"', ""),
        score=0.0,
        severity=priority,
        cves=[vul_name],
        fixed_ver=fixed,
        affected_ver=affected,
    )


def parse_openssl_page(collection: AppVulCollection, body: str) -> int:
    """Add the vulnerabilities listed on the page; return how many were added."""
    count = 0
    for chunk in body.split("h3 id")[1:]:
        vul = _parse_entry(chunk)
        if vul is not None:
            collection.add(vul)
            count += 1
    return count


def openssl_update(collection: AppVulCollection) -> int:
    """Download the advisory page and add its vulnerabilities."""
    logger.info("fetching openssl vulnerabilities")
    try:
        with urllib.request.urlopen(OPENSSL_URI, timeout=60) as response:
            body = response.read().decode("utf-8", errors="replace")
    except OSError as exc:
        logger.error("could not download openssl update list: %s", exc)
        raise CouldNotDownloadError() from exc
    count = parse_openssl_page(collection, body)
    if count == 0:
        logger.error("Openssl update CVE FAIL")
        raise CouldNotParseError("Openssl update CVE FAIL")
    logger.info("Openssl update", extra={"fields": {"cve": count}})
    return count