from __future__ import annotations

import json
import logging
import math
import sys
from dataclasses import dataclass
from typing import Any, TextIO

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HookInput:
    transcript_path: str | None
    cwd: str | None
    context_percent: int
    raw: dict[str, Any]

    @property
    def project_id(self) -> str | None:
        if self.cwd is None:
            return None
        return project_id_from_cwd(self.cwd)


def project_id_from_cwd(cwd: str) -> str:
    parts = [part for part in cwd.replace("\\", "/").split("/") if part]
    return parts[-1] if parts else "unknown"


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if not math.isfinite(number):
        return None
    return number


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def context_percent(data: dict[str, Any]) -> int:
    """Context utilization 0..100, preferring the host-reported percentage."""
    window = data.get("context_window")
    if not isinstance(window, dict):
        return 0
    native = _number(window.get("used_percentage"))
    if native is not None:
        return min(100, max(0, _round_half_up(native)))
    size = _number(window.get("context_window_size"))
    if not size or size <= 0:
        return 0
    usage = window.get("current_usage")
    usage = usage if isinstance(usage, dict) else {}
    total = sum(
        _number(usage.get(key)) or 0.0
        for key in ("input_tokens", "cache_creation_input_tokens", "cache_read_input_tokens")
    )
    ratio = total / size * 100
    if not math.isfinite(ratio):
        return 0
    return min(100, max(0, _round_half_up(ratio)))


def parse_hook_input(raw: str) -> HookInput | None:
    if not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as exc:
        logger.warning("hook input is not valid json: %s", exc)
        return None
    if not isinstance(data, dict):
        return None
    transcript = data.get("transcript_path")
    cwd = data.get("cwd")
    return HookInput(
        transcript_path=transcript if isinstance(transcript, str) and transcript else None,
        cwd=cwd if isinstance(cwd, str) and cwd else None,
        context_percent=context_percent(data),
        raw=data,
    )


def read_hook_input(stream: TextIO | None = None) -> HookInput | None:
    source = stream or sys.stdin
    if source.isatty():
        return None
    return parse_hook_input(source.read())
