"""Sync report formatting functions.

Human-readable and machine-readable output for sync runs:

- ``format_sync_report`` -- summary of one reconcile pass.
- ``format_outcome`` -- verdict of a bidirectional run with its passes.
- ``report_to_json`` / ``outcome_to_json`` -- structured dicts for MCP
  tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncOutcome, SyncReport


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format one pass as human-readable text.

    Sections are only included when non-empty. Skipped entities are
    summarised by count only.
    """
    lines: list[str] = []

    lines.append(f"Sync {report.source} -> {report.target}")
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    if report.since:
        lines.append(f"Changes since: {report.since}")
    lines.append("")

    lines.append(
        f"Processed {len(report.results)} entities: "
        f"{len(report.inserted)} inserted, {len(report.updated)} updated, "
        f"{len(report.skipped)} skipped, {len(report.errors)} errors"
    )
    lines.append("")

    if report.inserted:
        lines.append("Inserted:")
        for r in report.inserted:
            lines.append(f"  {r.table}/{r.local_id} -> {r.remote_id}")
        lines.append("")

    if report.updated:
        lines.append("Updated:")
        for r in report.updated:
            lines.append(f"  {r.table}/{r.local_id} -> {r.remote_id}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.table}/{r.local_id}: {r.error}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_outcome(outcome: SyncOutcome) -> str:
    """Format a bidirectional run: verdict first, then each pass."""
    if outcome.success:
        lines = ["Bidirectional sync succeeded"]
    else:
        lines = [f"Bidirectional sync failed: {outcome.error}"]
    for report in outcome.reports:
        lines.append("")
        lines.append(format_sync_report(report))
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert one pass report to a dict with counts and per-entity results."""
    results_list = []
    for r in report.results:
        entry: dict = {
            "table": r.table,
            "local_id": r.local_id,
            "remote_id": r.remote_id,
            "action": r.action.value,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "source": report.source,
        "target": report.target,
        "since": report.since,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "inserted": len(report.inserted),
            "updated": len(report.updated),
            "skipped": len(report.skipped),
            "errors": len(report.errors),
        },
        "results": results_list,
    }


def outcome_to_json(outcome: SyncOutcome) -> dict:
    """Convert a bidirectional outcome to a dict."""
    return {
        "success": outcome.success,
        "phase": outcome.phase.value,
        "error": str(outcome.error) if outcome.error else None,
        "passes": [report_to_json(r) for r in outcome.reports],
    }
