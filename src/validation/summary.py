# src/validation/summary.py
"""Session summary: key-hold intervals and mouse clicks from inputs.json.

Pairing is by key name in trace order:
  - KeyDown ... KeyUp           → closed press [start, end]
  - KeyUp with no open KeyDown  → held from capture start (start_ms=None)
  - KeyDown never released      → held at capture end (end_ms=None)

A repeated KeyDown on an already-open key restarts that press.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from reprostore.core.errors import InvalidManifestError
from reprostore.logging.logger import get_logger
from reprostore.validation.documents import (
    DocumentLoadError,
    InputEvent,
    load_inputs,
    load_manifest,
)
from reprostore.validation.engine import KEY_DOWN, KEY_UP
from reprostore.validation.models import BundleSummary, KeyPress, MouseClick

MOUSE_BUTTON_DOWN = "MouseButtonDown"


def _press_sort_key(press: KeyPress) -> tuple[float, bool]:
    # held-from-start sorts as 0 and ahead of a real press at 0
    if press.start_ms is None:
        return 0.0, False
    return press.start_ms, True


def build_key_timeline(events: Iterable[InputEvent]) -> tuple[list[KeyPress], list[MouseClick]]:
    """Pair key events into presses and collect mouse clicks, both time ordered."""
    presses: list[KeyPress] = []
    clicks: list[MouseClick] = []
    open_keys: dict[str, float] = {}

    for event in events:
        if event.input_type == KEY_DOWN:
            open_keys[event.key] = event.timestamp_ms
        elif event.input_type == KEY_UP:
            start = open_keys.pop(event.key, None)
            if start is None:
                presses.append(KeyPress(
                    key=event.key, start_ms=None, end_ms=event.timestamp_ms,
                    duration_ms=event.timestamp_ms,
                ))
            else:
                presses.append(KeyPress(
                    key=event.key, start_ms=start, end_ms=event.timestamp_ms,
                    duration_ms=event.timestamp_ms - start,
                ))
        elif event.input_type == MOUSE_BUTTON_DOWN:
            clicks.append(MouseClick(button=event.key, timestamp_ms=event.timestamp_ms))

    presses.extend(KeyPress(key=key, start_ms=start) for key, start in open_keys.items())
    presses.sort(key=_press_sort_key)
    clicks.sort(key=lambda c: c.timestamp_ms)
    return presses, clicks


class SummaryBuilder:
    """Build a BundleSummary from a bundle directory."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or get_logger("validation.summary")

    def build(self, bundle_dir: Path | str) -> BundleSummary:
        """Summarize ``bundle_dir``.

        Raises:
            InvalidManifestError: If manifest.json cannot be loaded.
        """
        bundle_dir = Path(bundle_dir)
        try:
            manifest = load_manifest(bundle_dir)
        except DocumentLoadError as exc:
            raise InvalidManifestError(
                f"loading manifest: {exc}", details={"path": str(bundle_dir)}
            ) from exc

        summary = BundleSummary(
            bundle_id=manifest.bundle_id or "",
            map_name=manifest.map_name or None,
            duration_seconds=manifest.duration_seconds,
            video_frames=manifest.total_frames,
            video_fps=manifest.video_fps,
        )

        try:
            inputs = load_inputs(bundle_dir)
        except DocumentLoadError as exc:
            self._logger.debug("No input timeline for %s: %s", bundle_dir, exc)
            return summary

        summary.key_presses, summary.mouse_clicks = build_key_timeline(inputs.events)
        return summary
