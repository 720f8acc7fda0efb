"""Ruby gem advisories read from a clone of the ruby advisory database."""

from __future__ import annotations

import logging
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass, field

import yaml

from .appvuls import AppVulCollection
from .models import AppModuleVersion, AppModuleVul, CouldNotDownloadError, FilesystemError
from .utils import run_command

logger = logging.getLogger(__name__)

RUBY_GIT_URL = "https://github.com/rubysec/ruby-advisory-db"

# ~> 4.2.5, >= 4.2.5.1
_VER1_RE = re.compile(r"~> ([0-9a-zA-Z.]+), >= ([0-9a-zA-Z.]+)")
# >= 2.12.5, < 3.0.0
_VER2_RE = re.compile(r"([<>=]+) ([0-9a-zA-Z.]+), ([<>=]+) ([0-9a-zA-Z.]+)")
# ~> 3.9.5
_VER3_RE = re.compile(r"~> ([0-9a-zA-Z.]+)")
# >= 1.9.24
_VER4_RE = re.compile(r"([<>=]+) ([0-9a-zA-Z.]+)")


@dataclass
class RubyAdvisory:
    """The fields of one advisory file that are used."""

    gem: str = ""
    cve: str = ""
    osvdb: str = ""
    url: str = ""
    title: str = ""
    date: str = ""
    description: str = ""
    cvss_v2: float = 0.0
    cvss_v3: float = 0.0
    patched_versions: list[str] = field(default_factory=list)
    unaffected_versions: list[str] = field(default_factory=list)


def _string(data: dict, key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def _float(data: dict, key: str) -> float:
    value = data.get(key)
    return value if isinstance(value, float) else 0.0


def _strings(data: dict, key: str) -> list[str]:
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def parse_ruby_yml(path: str) -> RubyAdvisory | None:
    """Read an advisory file; None when it is not a valid YAML mapping.

    An unreadable file gives an empty advisory.
    """
    try:
        with open(path, encoding="utf-8") as handle:
            text = handle.read()
    except OSError:
        text = ""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError:
        return None
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return None
    cve = _string(data, "cve")
    return RubyAdvisory(
        gem=_string(data, "gem"),
        cve="CVE-" + cve if cve else "",
        title=_string(data, "title"),
        cvss_v2=_float(data, "cvss_v2"),
        cvss_v3=_float(data, "cvss_v3"),
        description=_string(data, "description"),
        url=_string(data, "url"),
        patched_versions=_strings(data, "patched_versions"),
        unaffected_versions=_strings(data, "unaffected_versions"),
    )


def get_operation(op: str, rev: bool) -> str:
    """Map a comparison operator to its op code, reversed when rev is set."""
    table = {
        ">=": ("gteq", "lt"),
        ">": ("gt", "lteq"),
        "<=": ("lteq", "gt"),
        "<": ("lt", "gteq"),
    }
    if op in table:
        return table[op][1 if rev else 0]
    return "eq"


def parse_ruby_version(index: int, text: str, rev: bool) -> list[AppModuleVersion]:
    """Parse one gem version requirement; an empty list when it is not understood.

    Entries after the first (index > 0) are joined with "or".
    """
    prefix = "or" if index > 0 else ""

    match = _VER1_RE.search(text)
    if match:
        parts = match.group(1).split(".")
        base = match.group(1) if len(parts) <= 2 else ".".join(parts[:2])
        return [
            AppModuleVersion(
                op_code=prefix + get_operation(">=", rev),
                version=f"{match.group(2)},{base}",
            )
        ]

    match = _VER2_RE.search(text)
    if match:
        return [
            AppModuleVersion(
                op_code=prefix + get_operation(match.group(1), rev), version=match.group(2)
            ),
            AppModuleVersion(op_code=get_operation(match.group(3), rev), version=match.group(4)),
        ]

    match = _VER3_RE.search(text)
    if match:
        parts = match.group(1).split(".")
        base = ".".join(parts[:-1]) if len(parts) <= 2 else ".".join(parts[:2])
        return [
            AppModuleVersion(
                op_code=prefix + get_operation(">=", rev),
                version=f"{match.group(1)},{base}",
            )
        ]

    match = _VER4_RE.search(text)
    if match:
        return [
            AppModuleVersion(
                op_code=prefix + get_operation(match.group(1), rev), version=match.group(2)
            )
        ]
    return []


def generate_affected_ver(patched_versions: list[str]) -> list[AppModuleVersion]:
    """Derive affected versions by reversing the patched requirements."""
    affected: list[AppModuleVersion] = []
    for index, text in enumerate(patched_versions):
        affected.extend(parse_ruby_version(index, text, True))
    return affected


def _sort_key(text: str) -> str:
    start = next((i for i, ch in enumerate(text) if ch.isalnum()), len(text))
    return text[start:]


def ruby_vul_to_module(advisory: RubyAdvisory) -> AppModuleVul | None:
    """Build the module vulnerability; None when no versions are listed.

    The advisory's version lists are sorted in place.
    """
    vul = AppModuleVul(
        app_name="ruby",
        module_name="ruby:" + advisory.gem,
        vul_name=advisory.cve,
        description=advisory.title + "/n" + advisory.description,
        score=advisory.cvss_v2,
        score_v3=advisory.cvss_v3,
        link=advisory.url,
    )
    advisory.patched_versions.sort(key=_sort_key)
    advisory.unaffected_versions.sort(key=_sort_key)
    for index, text in enumerate(advisory.patched_versions):
        vul.fixed_ver.extend(parse_ruby_version(index, text, False))
    for index, text in enumerate(advisory.unaffected_versions):
        vul.unaffected_ver.extend(parse_ruby_version(index, text, False))
    if not advisory.patched_versions and not advisory.unaffected_versions:
        return None
    # Only approximate; affected versions of gems are not used in scanning.
    vul.affected_ver = generate_affected_ver(advisory.patched_versions)
    return vul


def get_yaml(directory: str) -> list[AppModuleVul]:
    """Convert every advisory file of one gem directory."""
    try:
        entries = sorted(os.scandir(directory), key=lambda e: e.name)
    except OSError as exc:
        logger.error("Get year yaml fail", extra={"fields": {"error": exc}})
        return []
    modules: list[AppModuleVul] = []
    for entry in entries:
        if entry.is_dir() or not entry.name.endswith(".yml"):
            continue
        advisory = parse_ruby_yml(entry.path)
        if advisory is None or not advisory.cve:
            continue
        module = ruby_vul_to_module(advisory)
        if module is not None:
            modules.append(module)
    return modules


def ruby_update(collection: AppVulCollection) -> int:
    """Clone the advisory database and add every gem advisory; return the count."""
    try:
        workdir = tempfile.TemporaryDirectory(prefix="ruby-advisory-db")
    except OSError as exc:
        raise FilesystemError() from exc
    with workdir as repository:
        try:
            run_command(repository, "git", "clone", RUBY_GIT_URL, ".")
        except (OSError, subprocess.CalledProcessError) as exc:
            output = getattr(exc, "output", b"") or b""
            logger.error(
                "could not pull ruby-advisory-db repository",
                extra={"fields": {"error": exc, "output": output.decode(errors="replace")}},
            )
            raise CouldNotDownloadError() from exc

        base = os.path.join(repository, "gems")
        entries = sorted(os.scandir(base), key=lambda e: e.name)
        count = 0
        for entry in entries:
            if not entry.is_dir():
                continue
            for vul in get_yaml(entry.path):
                vul.cves = [vul.vul_name]
                collection.add(vul)
                collection.cache.add(vul.vul_name)
                count += 1
    return count