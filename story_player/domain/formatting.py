"""Human-readable durations and relative times for CLI output."""
from __future__ import annotations

import math
from datetime import datetime, timezone


def format_duration(seconds: float | None) -> str:
    if not seconds or math.isnan(seconds):
        return "0:00"
    total = int(math.floor(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_listening_time(seconds: float | None) -> str:
    if not seconds or math.isnan(seconds):
        return "0m"
    total = int(math.floor(seconds))
    hours = total // 3600
    minutes = (total % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_time_ago(moment: datetime | None, *, now: datetime | None = None) -> str:
    if moment is None:
        return ""
    reference = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    diff = int((reference - moment).total_seconds())
    if diff < 60:
        return "just now"
    if diff < 3600:
        return f"{diff // 60}m ago"
    if diff < 86400:
        return f"{diff // 3600}h ago"
    if diff < 604800:
        return f"{diff // 86400}d ago"
    if diff < 2592000:
        return f"{diff // 604800}w ago"
    if diff < 31536000:
        return f"{diff // 2592000}mo ago"
    return f"{diff // 31536000}y ago"
