import pytest

from vuldbgen.models import AppModuleVersion
from vuldbgen.ruby import (
    RubyAdvisory,
    generate_affected_ver,
    get_operation,
    get_yaml,
    parse_ruby_version,
    parse_ruby_yml,
    ruby_vul_to_module,
)


def pairs(versions):
    return [(v.op_code, v.version) for v in versions]


def test_ruby_affected_version():
    patched = [">= 1.3.1", "~> 1.2.2", "~> 1.1.1", "~> 1.0.4"]
    expected = [("lt", "1.3.1"), ("orlt", "1.2.2,1.2"), ("orlt", "1.1.1,1.1"), ("orlt", "1.0.4,1.0")]
    assert pairs(generate_affected_ver(patched)) == expected


@pytest.mark.parametrize(
    "op,rev,expected",
    [
        (">=", False, "gteq"),
        (">=", True, "lt"),
        (">", False, "gt"),
        (">", True, "lteq"),
        ("<=", False, "lteq"),
        ("<=", True, "gt"),
        ("<", False, "lt"),
        ("<", True, "gteq"),
        ("=", False, "eq"),
    ],
)
def test_get_operation(op, rev, expected):
    assert get_operation(op, rev) == expected


def test_parse_pessimistic_with_minimum():
    result = parse_ruby_version(0, "~> 4.2.5, >= 4.2.5.1", False)
    assert pairs(result) == [("gteq", "4.2.5.1,4.2")]


def test_parse_two_bounds():
    result = parse_ruby_version(1, ">= 2.12.5, < 3.0.0", False)
    assert pairs(result) == [("orgteq", "2.12.5"), ("lt", "3.0.0")]


def test_parse_pessimistic_short():
    assert pairs(parse_ruby_version(0, "~> 3.9", False)) == [("gteq", "3.9,3")]
    assert pairs(parse_ruby_version(0, "~> 3.9.5", False)) == [("gteq", "3.9.5,3.9")]


def test_parse_unknown_requirement():
    assert parse_ruby_version(0, "anything", False) == []


def test_vul_to_module_sorts_and_converts():
    advisory = RubyAdvisory(
        gem="rack",
        cve="CVE-2020-1000",
        title="title",
        description="desc",
        url="https://example.com/adv",
        cvss_v3=7.5,
        patched_versions=[">= 2.1.4", "~> 2.0.9"],
        unaffected_versions=["< 1.0"],
    )
    vul = ruby_vul_to_module(advisory)
    assert vul.module_name == "ruby:rack"
    assert vul.app_name == "ruby"
    assert vul.description == "title/ndesc"
    assert vul.score_v3 == 7.5
    assert advisory.patched_versions == ["~> 2.0.9", ">= 2.1.4"]
    assert pairs(vul.fixed_ver) == [("gteq", "2.0.9,2.0"), ("orgteq", "2.1.4")]
    assert pairs(vul.unaffected_ver) == [("lt", "1.0")]
    assert pairs(vul.affected_ver) == [("lt", "2.0.9,2.0"), ("orlt", "2.1.4")]


def test_vul_to_module_without_versions():
    assert ruby_vul_to_module(RubyAdvisory(gem="x", cve="CVE-2020-1")) is None


ADVISORY_YML = """gem: rack
cve: "2020-8161"
title: Directory traversal
description: bad paths
cvss_v3: 8.6
url: https://example.com/adv
patched_versions:
  - "~> 2.1.3"
  - ">= 2.2.0"
"""


def test_parse_ruby_yml(tmp_path):
    path = tmp_path / "CVE-2020-8161.yml"
    path.write_text(ADVISORY_YML)
    advisory = parse_ruby_yml(str(path))
    assert advisory.gem == "rack"
    assert advisory.cve == "CVE-2020-8161"
    assert advisory.cvss_v3 == 8.6
    assert advisory.patched_versions == ["~> 2.1.3", ">= 2.2.0"]


def test_parse_ruby_yml_invalid(tmp_path):
    path = tmp_path / "bad.yml"
    path.write_text("- just\n- a list\n")
    assert parse_ruby_yml(str(path)) is None


def test_get_yaml(tmp_path):
    (tmp_path / "CVE-2020-8161.yml").write_text(ADVISORY_YML)
    (tmp_path / "OSVDB-1.yml").write_text("gem: rack\npatched_versions:\n  - '>= 1.0'\n")
    (tmp_path / "README.md").write_text("ignored")
    modules = get_yaml(str(tmp_path))
    assert len(modules) == 1
    assert modules[0].vul_name == "CVE-2020-8161"
    assert modules[0].fixed_ver == [
        AppModuleVersion(op_code="gteq", version="2.1.3,2.1"),
        AppModuleVersion(op_code="orgteq", version="2.2.0"),
    ]


def test_get_yaml_missing_directory(tmp_path):
    assert get_yaml(str(tmp_path / "missing")) == []