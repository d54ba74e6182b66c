# src/validation/formatting.py
"""Plain-text renderers for validation reports and session summaries."""

from __future__ import annotations

from reprostore.validation.models import (
    BundleSummary,
    ValidationIssue,
    ValidationReport,
)


def _format_issues(title: str, issues: list[ValidationIssue]) -> list[str]:
    lines = ["", f"=== {title} ==="]
    for issue in issues:
        lines.append(f"  [{issue.code.value}] {issue.message}")
        if issue.got is not None or issue.want is not None:
            lines.append(f"    Got:  {issue.got or ''}")
            lines.append(f"    Want: {issue.want or ''}")
    return lines


def format_report(report: ValidationReport) -> str:
    lines = ["✓ Bundle is VALID" if report.valid else "✗ Bundle is INVALID", ""]

    stats = report.stats
    lines += [
        "=== Bundle Statistics ===",
        "Manifest:",
        f"  Duration: {stats.manifest_duration_sec:.3f}s",
        f"  Video frames: {stats.manifest_total_frames}",
        f"  Video FPS: {stats.video_fps:.1f}",
    ]
    if stats.timing_frame_count > 0:
        lines += [
            "",
            "Timing.json (1:1 with video frames):",
            f"  Frame contexts: {stats.timing_frame_count}",
            f"  Timestamp range: {stats.timing_first_timestamp_ms:.1f}ms - "
            f"{stats.timing_last_timestamp_ms:.1f}ms",
        ]
    if stats.input_event_count > 0:
        lines += [
            "",
            "Inputs.json:",
            f"  Total events: {stats.input_event_count}",
            f"  Keyboard: {stats.keyboard_event_count}, Mouse: {stats.mouse_event_count}",
            f"  Timestamp range: {stats.input_first_timestamp_ms:.1f}ms - "
            f"{stats.input_last_timestamp_ms:.1f}ms",
        ]
    if stats.duration_mismatch_ms > 0:
        lines += ["", f"Duration mismatch: {stats.duration_mismatch_ms:.1f}ms"]

    if report.errors:
        lines += _format_issues("ERRORS", report.errors)
    if report.warnings:
        lines += _format_issues("WARNINGS", report.warnings)
    return "\n".join(lines) + "\n"


def format_summary(summary: BundleSummary) -> str:
    lines = [f"=== Bundle Summary: {summary.bundle_id} ===", ""]
    if summary.map_name:
        lines.append(f"Map: {summary.map_name}")
    duration_ms = summary.duration_seconds * 1000.0
    lines += [
        f"Duration: {summary.duration_seconds:.2f}s ({duration_ms:.1f}ms)",
        f"Video: {summary.video_frames} frames @ {summary.video_fps:.1f} FPS",
        f"Timeline: 0ms → {duration_ms:.0f}ms",
    ]

    if summary.key_presses:
        lines += ["", f"=== Key Presses ({len(summary.key_presses)}) ==="]
        for press in summary.key_presses:
            if press.start_ms is None:
                lines.append(
                    f"  [     0ms - {press.end_ms:6.0f}ms] {press.key} (held from start)"
                )
            elif press.end_ms is not None:
                lines.append(
                    f"  [{press.start_ms:6.0f}ms - {press.end_ms:6.0f}ms] {press.key} "
                    f"(held {press.duration_ms:.0f}ms)"
                )
            else:
                lines.append(f"  [{press.start_ms:6.0f}ms - ???    ] {press.key} (held at end)")
    else:
        lines += ["", "No keyboard input recorded."]

    if summary.mouse_clicks:
        lines += ["", f"=== Mouse Clicks ({len(summary.mouse_clicks)}) ==="]
        lines += [f"  [{c.timestamp_ms:6.0f}ms] {c.button}" for c in summary.mouse_clicks]
    return "\n".join(lines) + "\n"
