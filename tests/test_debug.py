import logging

import pytest

from vuldbgen import debug
from vuldbgen.debug import DebugFilter, debug_vuln, first_n, parse_debug_filters
from vuldbgen.models import AppModuleVul, Vulnerability


@pytest.fixture(autouse=True)
def reset_filters():
    debug.DEBUGS.enabled = False
    debug.DEBUGS.cves = set()
    yield
    debug.DEBUGS.enabled = False
    debug.DEBUGS.cves = set()


def test_first_n():
    assert first_n("abcdef", 3) == "abc..."
    assert first_n("abc", 3) == "abc"


def test_parse_debug_filters_collects_cves():
    result = parse_debug_filters("v=CVE-2023-1000")
    assert result.enabled
    assert result.cves == {"CVE-2023-1000"}
    assert result.matches("CVE-2023-1000")
    assert not result.matches("CVE-2023-1001")


def test_parse_debug_filters_ignores_other_keys():
    result = parse_debug_filters("x=1,v=CVE-2023-1,noequals")
    assert result.cves == {"CVE-2023-1"}


def test_disabled_filter_never_matches():
    assert not DebugFilter(cves={"CVE-1"}).matches("CVE-1")


def test_debug_vuln_logs_matching_vulnerability(caplog):
    parse_debug_filters("v=CVE-2023-1000")
    caplog.set_level(logging.DEBUG, logger="vuldbgen.debug")
    assert debug_vuln(Vulnerability(name="CVE-2023-1000"), "alpine")
    assert [r.getMessage() for r in caplog.records][-1] == "alpine"
    assert caplog.records[-1].fields["name"] == "CVE-2023-1000"


def test_debug_vuln_handles_app_vulns():
    parse_debug_filters("v=CVE-2023-1000")
    assert debug_vuln(AppModuleVul(vul_name="CVE-2023-1000"), "app")
    assert not debug_vuln(AppModuleVul(vul_name="CVE-2020-1"), "app")


def test_debug_vuln_skips_when_disabled_or_other_type():
    assert not debug_vuln(Vulnerability(name="CVE-2023-1000"), "x")
    parse_debug_filters("v=CVE-2023-1000")
    assert not debug_vuln("CVE-2023-1000", "x")