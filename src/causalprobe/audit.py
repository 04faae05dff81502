"""
Audit trail for disagreement reports.

Turns a ``DisagreementReport`` into the shapes a caller persists:

- one row per atom
- one summary row per comparison
- a SHA-256 integrity hash over the canonical JSON of everything above

The audit trail answers: "What did the detector say about these two
models at this point in time, and can we reproduce it?"

Usage:
    from causalprobe.audit import ComparisonAudit, render_audit_report

    audit = ComparisonAudit.from_report(report)

    # JSON for storage
    audit_json = audit.to_json()

    # Markdown for human review
    audit_md = render_audit_report(audit)
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from causalprobe.config import Config, get_config
from causalprobe.disagreement.models import DisagreementReport, Severity

logger = logging.getLogger(__name__)


def report_fingerprint(report: DisagreementReport) -> str:
    """Stable hash of a report's content; identical inputs give identical fingerprints."""
    return hashlib.sha256(report.model_dump_json().encode()).hexdigest()


def atom_rows(report: DisagreementReport, comparison_id: str) -> list[dict[str, Any]]:
    """One persisted row per atom, in report order."""
    rows = []
    for index, atom in enumerate(report.atoms):
        rows.append({
            "comparison_id": comparison_id,
            "index": index,
            "type": atom.type.value,
            "severity": atom.severity.value,
            "left_value": atom.left_value,
            "right_value": atom.right_value,
            "edge": atom.edge.model_dump(by_alias=True) if atom.edge else None,
            "variable": atom.variable,
            "reason": atom.reason,
            "epistemic_weight": atom.epistemic_weight.model_dump(),
        })
    return rows


def summary_row(report: DisagreementReport, comparison_id: str) -> dict[str, Any]:
    """The per-comparison summary row."""
    quality = report.alignment_quality
    return {
        "comparison_id": comparison_id,
        "left_model": report.left_model,
        "right_model": report.right_model,
        "score": report.score,
        "summary": report.summary,
        "atom_count": len(report.atoms),
        "alignment_coverage": quality.coverage,
        "alignment_threshold": quality.threshold,
        "cross_domain": quality.cross_domain,
        "unknown_variables": list(quality.unknown_variables),
    }


@dataclass(frozen=True)
class ComparisonAudit:
    """
    Immutable, timestamped record of one comparison.

    Every field except ``timestamp`` is deterministic given the same
    inputs and configuration.
    """

    comparison_id: str
    timestamp: str  # ISO 8601 UTC
    causalprobe_version: str
    config_hash: str

    high_count: int
    medium_count: int
    low_count: int

    summary: dict[str, Any]
    atoms: tuple[dict[str, Any], ...] = ()

    # SHA-256 of all other fields
    report_hash: str = ""

    @classmethod
    def from_report(
        cls,
        report: DisagreementReport,
        config: Config | None = None,
        now: datetime | None = None,
    ) -> "ComparisonAudit":
        """
        Create an audit record from a report.

        Args:
            report: The disagreement report
            config: Configuration the report was produced with
            now: Timestamp override (defaults to current UTC time)
        """
        from causalprobe import __version__

        config = config or get_config()
        now = now or datetime.now(timezone.utc)
        comparison_id = report_fingerprint(report)[:16]

        data = {
            "comparison_id": comparison_id,
            "timestamp": now.isoformat(),
            "causalprobe_version": __version__,
            "config_hash": config.config_hash(),
            "high_count": len(report.atoms_by_severity(Severity.HIGH)),
            "medium_count": len(report.atoms_by_severity(Severity.MEDIUM)),
            "low_count": len(report.atoms_by_severity(Severity.LOW)),
            "summary": summary_row(report, comparison_id),
            "atoms": tuple(atom_rows(report, comparison_id)),
        }

        hash_content = json.dumps(data, sort_keys=True, default=str)
        report_hash = hashlib.sha256(hash_content.encode()).hexdigest()

        logger.debug("Audit %s: %d atom row(s)", comparison_id, len(data["atoms"]))
        return cls(**data, report_hash=report_hash)

    def verify(self) -> bool:
        """Recompute the integrity hash and compare."""
        data = self.to_dict()
        data.pop("report_hash")
        hash_content = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(hash_content.encode()).hexdigest() == self.report_hash

    def to_json(self) -> str:
        """Serialize to JSON for storage."""
        data = {
            "comparison_id": self.comparison_id,
            "timestamp": self.timestamp,
            "causalprobe_version": self.causalprobe_version,
            "config_hash": self.config_hash,
            "high_count": self.high_count,
            "medium_count": self.medium_count,
            "low_count": self.low_count,
            "summary": self.summary,
            "atoms": list(self.atoms),
            "report_hash": self.report_hash,
        }
        return json.dumps(data, indent=2, sort_keys=True)

    def to_dict(self) -> dict[str, Any]:
        return json.loads(self.to_json())


def render_audit_report(audit: ComparisonAudit) -> str:
    """
    Render an audit record as a Markdown report.

    Suitable for attaching to review documents or archival storage.
    """
    summary = audit.summary
    status = "DISAGREEMENT" if summary["atom_count"] else "AGREEMENT"

    lines: list[str] = []
    lines.append(f"# causalprobe Comparison Audit: {status}")
    lines.append("")

    lines.append("## Comparison Metadata")
    lines.append("")
    lines.append("| Field | Value |")
    lines.append("|-------|-------|")
    lines.append(f"| Comparison ID | `{audit.comparison_id}` |")
    lines.append(f"| Timestamp | {audit.timestamp} |")
    lines.append(f"| causalprobe Version | {audit.causalprobe_version} |")
    lines.append(f"| Left Model | {summary['left_model']} |")
    lines.append(f"| Right Model | {summary['right_model']} |")
    lines.append(f"| Config Hash | `{audit.config_hash}` |")
    lines.append(f"| Report Integrity | `{audit.report_hash[:16]}...` |")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append(summary["summary"])
    lines.append("")
    lines.append("| Metric | Value |")
    lines.append("|--------|-------|")
    lines.append(f"| Score | {summary['score']:.4f} |")
    lines.append(f"| Atoms | {summary['atom_count']} |")
    lines.append(f"| High | {audit.high_count} |")
    lines.append(f"| Medium | {audit.medium_count} |")
    lines.append(f"| Low | {audit.low_count} |")
    lines.append(
        f"| Alignment Coverage | {summary['alignment_coverage']:.0%} "
        f"(threshold {summary['alignment_threshold']:.0%}) |"
    )
    lines.append("")

    if summary["unknown_variables"]:
        lines.append("## Unaligned Variables")
        lines.append("")
        for name in summary["unknown_variables"]:
            lines.append(f"- `{name}`")
        lines.append("")

    if audit.atoms:
        lines.append("## Atoms")
        lines.append("")
        lines.append("| # | Severity | Type | Subject | Left | Right |")
        lines.append("|---|----------|------|---------|------|-------|")
        for row in audit.atoms:
            edge = row.get("edge")
            subject = f"{edge['from']} -> {edge['to']}" if edge else (row.get("variable") or "-")
            lines.append(
                f"| {row['index'] + 1} | {row['severity'].upper()} | {row['type']} | "
                f"{subject} | {row['left_value']} | {row['right_value']} |"
            )
        lines.append("")

    lines.append("---")
    lines.append(
        f"*Generated by causalprobe {audit.causalprobe_version} "
        f"at {audit.timestamp}. "
        f"Report hash: `{audit.report_hash[:16]}`*"
    )

    return "\n".join(lines)
