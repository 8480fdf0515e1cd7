from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime


class ClockPort(ABC):
    """Port for wall-clock time (cache expiry, ingestion timestamps).

    Infrastructure provides SystemClock; tests inject a fake.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Return current UTC datetime."""
        ...
