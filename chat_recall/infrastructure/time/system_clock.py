"""System clock adapter (UTC). Tests inject a fake ClockPort instead."""

from __future__ import annotations

from datetime import UTC, datetime

from chat_recall.application.ports.clock_port import ClockPort


class SystemClock(ClockPort):
    def now(self) -> datetime:  # pragma: no cover - trivial
        return datetime.now(UTC)
