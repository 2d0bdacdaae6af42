import json
import threading

import pytest

from scangate.errors import ParseCancelledError, ParseError
from scangate.services.parsers import parse_tool_output
from scangate.types import FileLocation, PackageLocation, SourceTool


def test_trivy_parses_vulnerabilities_and_failed_misconfigurations(trivy_image_report, as_bytes):
    findings = parse_tool_output(SourceTool.trivy, as_bytes(trivy_image_report))

    assert len(findings) == 2
    vuln, misconf = findings
    assert vuln.rule_id == "CVE-2023-1111"
    assert vuln.native_severity == "HIGH"
    assert vuln.location == PackageLocation(
        name="OpenSSL",
        version="1.1.1",
        image_digest="sha256:cccc",
        ecosystem="debian",
        purl="pkg:deb/debian/openssl@1.1.1",
    )
    assert vuln.cwe_ids == ("CWE-125",)
    assert "fixed in 1.1.1w" in vuln.message

    assert misconf.rule_id == "AVD-AWS-0086"
    assert misconf.location == FileLocation(path="main.tf", line_start=3, line_end=9)


def test_trivy_falls_back_to_image_digest_without_layer(trivy_image_report, as_bytes):
    vuln = trivy_image_report["Results"][0]["Vulnerabilities"][0]
    del vuln["Layer"]

    findings = parse_tool_output("trivy", as_bytes(trivy_image_report))

    assert findings[0].location.image_digest == "sha256:bbbb"


def test_trivy_secret_findings_use_target_path():
    payload = {
        "SchemaVersion": 2,
        "Results": [
            {
                "Target": "config/app.yaml",
                "Secrets": [
                    {
                        "RuleID": "github-pat",
                        "Severity": "CRITICAL",
                        "Title": "GitHub Personal Access Token",
                        "StartLine": 4,
                        "EndLine": 4,
                    }
                ],
            }
        ],
    }

    findings = parse_tool_output("trivy", json.dumps(payload))

    assert findings[0].rule_id == "github-pat"
    assert findings[0].location == FileLocation("config/app.yaml", 4, 4)


def test_trivy_accepts_null_results():
    assert parse_tool_output("trivy", '{"SchemaVersion": 2, "Results": null}') == []


def test_grype_prefers_related_cve_over_ghsa():
    payload = {
        "matches": [
            {
                "vulnerability": {"id": "GHSA-xxxx-yyyy-zzzz", "severity": "High"},
                "relatedVulnerabilities": [{"id": "CVE-2024-0002"}],
                "artifact": {"name": "requests", "version": "2.0.0", "type": "python"},
            }
        ],
        "source": {"type": "image", "target": {"manifestDigest": "sha256:dddd"}},
    }

    findings = parse_tool_output("grype", json.dumps(payload))

    assert findings[0].rule_id == "CVE-2024-0002"
    assert findings[0].aliases == ("GHSA-xxxx-yyyy-zzzz",)
    assert findings[0].location.image_digest == "sha256:dddd"


def test_grype_sbom_source_has_no_digest(grype_sbom_report, as_bytes):
    findings = parse_tool_output("grype", as_bytes(grype_sbom_report))

    assert findings[0].location.image_digest is None
    assert findings[0].native_severity == "Critical"


def test_checkov_reads_framework_list_and_summary_only_objects():
    payload = [
        {
            "check_type": "terraform",
            "results": {
                "failed_checks": [
                    {
                        "check_id": "CKV_AWS_20",
                        "check_name": "S3 Bucket has an ACL defined which allows public READ access.",
                        "file_path": "/main.tf",
                        "file_line_range": [1, 8],
                        "resource": "aws_s3_bucket.data",
                        "severity": None,
                    }
                ]
            },
        },
        {"passed": 0, "failed": 0, "skipped": 0, "parsing_errors": 0},
    ]

    findings = parse_tool_output("checkov", json.dumps(payload))

    assert len(findings) == 1
    assert findings[0].rule_id == "CKV_AWS_20"
    assert findings[0].native_severity == ""
    assert findings[0].location == FileLocation("/main.tf", 1, 8)
    assert "aws_s3_bucket.data" in findings[0].message


def test_semgrep_maps_fields_and_cwe():
    payload = {
        "results": [
            {
                "check_id": "python.lang.security.audit.eval-detected",
                "path": "app/views.py",
                "start": {"line": 5},
                "end": {"line": 7},
                "extra": {
                    "message": "Detected eval",
                    "severity": "ERROR",
                    "metadata": {"cwe": ["CWE-95: Improper Neutralization"]},
                },
            }
        ],
        "errors": [],
    }

    findings = parse_tool_output("semgrep", json.dumps(payload))

    assert findings[0].location == FileLocation("app/views.py", 5, 7)
    assert findings[0].cwe_ids == ("CWE-95",)
    assert findings[0].native_severity == "ERROR"


def test_semgrep_missing_line_degrades_to_file_only():
    payload = {
        "results": [
            {"check_id": "rule-1", "path": "app.py", "extra": {"severity": "WARNING"}}
        ]
    }

    findings = parse_tool_output("semgrep", json.dumps(payload))

    assert findings[0].location == FileLocation("app.py")


def test_tflint_json_and_compact_formats_agree():
    payload = {
        "issues": [
            {
                "rule": {"name": "terraform_typed_variables", "severity": "warning"},
                "message": "`region` variable has no type",
                "range": {
                    "filename": "variables.tf",
                    "start": {"line": 3, "column": 1},
                    "end": {"line": 3, "column": 18},
                },
            }
        ],
        "errors": [],
    }
    compact = (
        "1 issue(s) found:\n\n"
        "variables.tf:3:1: Warning - `region` variable has no type (terraform_typed_variables)\n"
    )

    from_json = parse_tool_output("tflint", json.dumps(payload))
    from_text = parse_tool_output("tflint", compact)

    assert from_json[0].rule_id == from_text[0].rule_id == "terraform_typed_variables"
    assert from_json[0].location.line_start == from_text[0].location.line_start == 3
    assert from_text[0].native_severity == "Warning"


def test_tflint_compact_rejects_unrecognized_text():
    with pytest.raises(ParseError):
        parse_tool_output("tflint", "panic: runtime error\n")


def test_ansible_lint_codeclimate():
    payload = [
        {
            "type": "issue",
            "check_name": "no-changed-when",
            "categories": ["command-shell"],
            "severity": "major",
            "description": "Commands should not change things if nothing needs doing.",
            "location": {"path": "playbooks/site.yml", "lines": {"begin": 14}},
        },
        {
            "type": "issue",
            "check_name": "yaml[truthy]",
            "severity": "minor",
            "description": "Truthy value should be one of [false, true]",
            "location": {"path": "roles/web/tasks/main.yml", "positions": {"begin": {"line": 2}}},
        },
    ]

    findings = parse_tool_output("ansible-lint", json.dumps(payload))

    assert [f.rule_id for f in findings] == ["no-changed-when", "yaml[truthy]"]
    assert findings[0].location == FileLocation("playbooks/site.yml", 14)
    assert findings[1].location.line_start == 2


def test_gitleaks_json_never_copies_secret(gitleaks_report, as_bytes):
    findings = parse_tool_output("gitleaks", as_bytes(gitleaks_report))

    assert findings[0].rule_id == "aws-access-token"
    assert findings[0].location == FileLocation("deploy/settings.env", 12, 12)
    assert "AKIA" not in findings[0].message
    assert "0123456789ab" in findings[0].message


def test_gitleaks_verbose_text_report():
    text = """
    ○
    │╲
    gitleaks

Finding:     aws_key = REDACTED
Secret:      REDACTED
RuleID:      aws-access-token
Entropy:     3.65
File:        deploy/settings.env
Line:        12
Commit:      0123456789abcdef
Author:      dev

Finding:     token = REDACTED
Secret:      REDACTED
RuleID:      generic-api-key
File:        app/config.py
Line:        3

10:00AM WRN leaks found: 2
"""

    findings = parse_tool_output("gitleaks", text)

    assert [f.rule_id for f in findings] == ["aws-access-token", "generic-api-key"]
    assert findings[1].location == FileLocation("app/config.py", 3)
    assert all("REDACTED" not in f.message for f in findings)


def test_gitleaks_text_without_leaks_is_empty():
    assert parse_tool_output("gitleaks", "10:00AM INF no leaks found\n") == []


@pytest.mark.parametrize(
    "tool, data",
    [
        ("trivy", b""),
        ("trivy", b"   \n"),
        ("semgrep", b"{not json"),
        ("grype", b'{"unexpected": true}'),
        ("checkov", b'"just a string"'),
        ("ansible-lint", b'{"issues": []}'),
        ("semgrep", b'{"results": [{"path": "a.py"}]}'),
        ("trivy", b"\xff\xfe\x00"),
    ],
)
def test_malformed_input_raises_parse_error(tool, data):
    with pytest.raises(ParseError):
        parse_tool_output(tool, data)


def test_unknown_tool_raises_parse_error():
    with pytest.raises(ParseError, match="unsupported tool"):
        parse_tool_output("snyk", b"{}")


def test_parse_stops_when_cancelled(trivy_image_report, as_bytes):
    event = threading.Event()
    event.set()

    with pytest.raises(ParseCancelledError):
        parse_tool_output("trivy", as_bytes(trivy_image_report), cancel_event=event)
