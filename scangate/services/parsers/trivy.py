from __future__ import annotations

from typing import Iterator, Optional

from ...types import FileLocation, PackageLocation, RawFinding, SourceTool
from .base import ReportParser, as_dict, as_int, as_list, as_str, cwe_list


class TrivyParser(ReportParser):
    """Reads ``trivy <image|fs|config> --format json`` reports.

    Vulnerabilities become package findings; misconfigurations and secrets
    become file findings anchored on the result target.
    """

    tool = SourceTool.trivy

    def _parse_text(self, text: str) -> Iterator[RawFinding]:
        payload = self._load_json(text)
        if not isinstance(payload, dict):
            raise self._fail("expected a report object")
        if "Results" not in payload and "SchemaVersion" not in payload:
            raise self._fail("missing 'Results'")

        image_digest = _image_digest(as_dict(payload.get("Metadata")))
        for result in as_list(payload.get("Results")):
            result = as_dict(result)
            target = as_str(result.get("Target"))
            result_type = as_str(result.get("Type")) or None

            for vuln in as_list(result.get("Vulnerabilities")):
                yield self._vulnerability(as_dict(vuln), result_type, image_digest)
            for misconf in as_list(result.get("Misconfigurations")):
                finding = self._misconfiguration(as_dict(misconf), target)
                if finding is not None:
                    yield finding
            for secret in as_list(result.get("Secrets")):
                yield self._secret(as_dict(secret), target)

    def _vulnerability(
        self, vuln: dict, ecosystem: Optional[str], image_digest: Optional[str]
    ) -> RawFinding:
        vuln_id = as_str(vuln.get("VulnerabilityID"))
        package = as_str(vuln.get("PkgName"))
        if not vuln_id or not package:
            raise self._fail("vulnerability without VulnerabilityID or PkgName")
        layer_digest = as_str(as_dict(vuln.get("Layer")).get("Digest")) or None
        purl = as_str(as_dict(vuln.get("PkgIdentifier")).get("PURL")) or None
        title = as_str(vuln.get("Title"))
        fixed = as_str(vuln.get("FixedVersion"))
        message = title or as_str(vuln.get("Description")) or vuln_id
        if fixed:
            message = f"{message} (fixed in {fixed})"
        return RawFinding(
            source_tool=self.tool,
            rule_id=vuln_id,
            native_severity=as_str(vuln.get("Severity")),
            location=PackageLocation(
                name=package,
                version=as_str(vuln.get("InstalledVersion")),
                image_digest=layer_digest or image_digest,
                ecosystem=ecosystem,
                purl=purl,
            ),
            message=message,
            cwe_ids=cwe_list(vuln.get("CweIDs") or []),
            aliases=tuple(as_str(a) for a in as_list(vuln.get("VendorIDs")) if a),
        )

    def _misconfiguration(self, misconf: dict, target: str) -> Optional[RawFinding]:
        if as_str(misconf.get("Status")).upper() == "PASS":
            return None
        rule_id = as_str(misconf.get("AVDID")) or as_str(misconf.get("ID"))
        if not rule_id:
            raise self._fail("misconfiguration without AVDID or ID")
        cause = as_dict(misconf.get("CauseMetadata"))
        message = as_str(misconf.get("Message")) or as_str(misconf.get("Title"))
        return RawFinding(
            source_tool=self.tool,
            rule_id=rule_id,
            native_severity=as_str(misconf.get("Severity")),
            location=FileLocation(
                path=target,
                line_start=as_int(cause.get("StartLine")),
                line_end=as_int(cause.get("EndLine")),
            ),
            message=message or rule_id,
        )

    def _secret(self, secret: dict, target: str) -> RawFinding:
        rule_id = as_str(secret.get("RuleID"))
        if not rule_id:
            raise self._fail("secret without RuleID")
        return RawFinding(
            source_tool=self.tool,
            rule_id=rule_id,
            native_severity=as_str(secret.get("Severity")),
            location=FileLocation(
                path=target,
                line_start=as_int(secret.get("StartLine")),
                line_end=as_int(secret.get("EndLine")),
            ),
            message=as_str(secret.get("Title")) or rule_id,
        )


def _image_digest(metadata: dict) -> Optional[str]:
    for repo_digest in as_list(metadata.get("RepoDigests")):
        value = as_str(repo_digest)
        if "@" in value:
            return value.split("@", 1)[1]
    return as_str(metadata.get("ImageID")) or None
