"""Unit tests for severity and locator normalization."""

import logging

import pytest

from scangate.errors import UnknownSeverityError
from scangate.services.aggregation.normalizer import (
    normalize_finding,
    normalize_path,
    normalize_rule_id,
    normalize_severity,
    normalize_version,
)
from scangate.types import FileLocation, PackageLocation, RawFinding, Severity, SourceTool


@pytest.mark.parametrize(
    "tool, native, expected",
    [
        (SourceTool.trivy, "CRITICAL", Severity.critical),
        (SourceTool.trivy, "UNKNOWN", Severity.medium),
        (SourceTool.grype, "Negligible", Severity.info),
        (SourceTool.semgrep, "ERROR", Severity.high),
        (SourceTool.semgrep, "WARNING", Severity.medium),
        (SourceTool.semgrep, "INFO", Severity.info),
        (SourceTool.tflint, "notice", Severity.low),
        (SourceTool.ansible_lint, "blocker", Severity.critical),
        (SourceTool.ansible_lint, "minor", Severity.low),
        (SourceTool.checkov, None, Severity.medium),
        (SourceTool.gitleaks, "", Severity.high),
    ],
)
def test_normalize_severity_tables(tool, native, expected):
    assert normalize_severity(tool, native) == expected


def test_unknown_severity_strict_raises():
    with pytest.raises(UnknownSeverityError) as excinfo:
        normalize_severity(SourceTool.semgrep, "BOGUS", strict=True)

    assert excinfo.value.tool == "semgrep"
    assert excinfo.value.value == "BOGUS"


def test_unknown_severity_defaults_to_medium_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        severity = normalize_severity(SourceTool.semgrep, "BOGUS")

    assert severity == Severity.medium
    assert "BOGUS" in caplog.text


def test_normalize_rule_id_uppercases_advisories_only():
    assert normalize_rule_id(" cve-2023-1111 ") == "CVE-2023-1111"
    assert normalize_rule_id("ghsa-abcd-efgh-ijkl") == "GHSA-ABCD-EFGH-IJKL"
    assert normalize_rule_id("ckv_aws_20") == "CKV_AWS_20"
    assert normalize_rule_id("aws-access-token") == "aws-access-token"


def test_normalize_path():
    assert normalize_path("/builds/app/src/main.tf", "/builds/app") == "src/main.tf"
    assert normalize_path("/main.tf") == "main.tf"
    assert normalize_path("./src/../src/app.py") == "src/app.py"
    assert normalize_path("src\\win\\file.py") == "src/win/file.py"
    assert normalize_path("/builds/application/x.py", "/builds/app") == "builds/application/x.py"


def test_normalize_version():
    assert normalize_version("==1.2.3") == "1.2.3"
    assert normalize_version("v2.0.1") == "2.0.1"
    assert normalize_version("^4.17.21") == "4.17.21"
    assert normalize_version("1:1.1.1") == "1:1.1.1"
    assert normalize_version("version") == "version"


def test_normalize_finding_file_location(settings):
    raw = RawFinding(
        source_tool=SourceTool.semgrep,
        rule_id="python.eval",
        native_severity=" ERROR ",
        location=FileLocation("/builds/app/app/views.py", 9, 4),
        message=" Detected eval \n",
        cwe_ids=("CWE-95", "CWE-94", "CWE-95"),
    )

    finding = normalize_finding(raw, source_root=settings.source_root)

    assert finding.severity == Severity.high
    assert finding.location == FileLocation("app/views.py", 9, 9)
    assert finding.message == "Detected eval"
    assert finding.cwe_ids == ("CWE-94", "CWE-95")
    assert finding.source_tools == (SourceTool.semgrep,)
    assert finding.native_severities == ("semgrep:ERROR",)


def test_normalize_finding_package_location_is_case_insensitive():
    trivy = RawFinding(
        source_tool=SourceTool.trivy,
        rule_id="CVE-2023-1111",
        native_severity="HIGH",
        location=PackageLocation("OpenSSL", "1.1.1", image_digest="SHA256:CCCC", ecosystem="Debian"),
        message="openssl",
    )
    grype = RawFinding(
        source_tool=SourceTool.grype,
        rule_id="cve-2023-1111",
        native_severity="Critical",
        location=PackageLocation("openssl", "v1.1.1"),
        message="openssl",
    )

    left = normalize_finding(trivy)
    right = normalize_finding(grype)

    assert left.location.image_digest == "sha256:cccc"
    assert left.location.ecosystem == "debian"
    assert left.fingerprint == right.fingerprint
