from __future__ import annotations

from typing import Iterator, Optional, Tuple

from ...types import PackageLocation, RawFinding, SourceTool
from .base import ReportParser, as_dict, as_list, as_str, cwe_list


class GrypeParser(ReportParser):
    """Reads ``grype -o json`` output, from an image or from an SBOM."""

    tool = SourceTool.grype

    def _parse_text(self, text: str) -> Iterator[RawFinding]:
        payload = self._load_json(text)
        if not isinstance(payload, dict) or "matches" not in payload:
            raise self._fail("expected an object with a 'matches' list")
        image_digest = _source_digest(as_dict(payload.get("source")))
        for match in as_list(payload.get("matches")):
            yield self._match(as_dict(match), image_digest)

    def _match(self, match: dict, image_digest: Optional[str]) -> RawFinding:
        vulnerability = as_dict(match.get("vulnerability"))
        artifact = as_dict(match.get("artifact"))
        vuln_id = as_str(vulnerability.get("id"))
        package = as_str(artifact.get("name"))
        if not vuln_id or not package:
            raise self._fail("match without vulnerability.id or artifact.name")

        rule_id, aliases = _prefer_cve(vuln_id, match)
        fixed = [as_str(v) for v in as_list(as_dict(vulnerability.get("fix")).get("versions"))]
        message = as_str(vulnerability.get("description")) or rule_id
        if fixed:
            message = f"{message} (fixed in {', '.join(fixed)})"
        return RawFinding(
            source_tool=self.tool,
            rule_id=rule_id,
            native_severity=as_str(vulnerability.get("severity")),
            location=PackageLocation(
                name=package,
                version=as_str(artifact.get("version")),
                image_digest=_layer_digest(artifact) or image_digest,
                ecosystem=as_str(artifact.get("type")) or None,
                purl=as_str(artifact.get("purl")) or None,
            ),
            message=message,
            cwe_ids=cwe_list(vulnerability.get("cwes") or []),
            aliases=aliases,
        )


def _prefer_cve(vuln_id: str, match: dict) -> Tuple[str, Tuple[str, ...]]:
    """Report GHSA and distro advisories under their CVE when one is related."""
    if vuln_id.upper().startswith("CVE-"):
        return vuln_id, ()
    related = [
        as_str(as_dict(item).get("id"))
        for item in as_list(match.get("relatedVulnerabilities"))
    ]
    cves = sorted(r for r in related if r.upper().startswith("CVE-"))
    if cves:
        return cves[0], (vuln_id,)
    return vuln_id, ()


def _layer_digest(artifact: dict) -> Optional[str]:
    for location in as_list(artifact.get("locations")):
        layer = as_str(as_dict(location).get("layerID"))
        if layer:
            return layer
    return None


def _source_digest(source: dict) -> Optional[str]:
    target = source.get("target")
    if not isinstance(target, dict):
        return None
    return as_str(target.get("manifestDigest")) or as_str(target.get("imageID")) or None
