"""Periodic retry of parked ingestion failures inside a serving process."""

from __future__ import annotations

import logging
import threading

from chat_recall.application.dto.ingest_dto import BacklogReport
from chat_recall.application.use_cases.ingest_message import IngestMessage

logger = logging.getLogger(__name__)


class BacklogDrainer:
    """Runs IngestMessage.drain_backlog every interval_s on a daemon thread."""

    def __init__(self, ingest: IngestMessage, interval_s: float, batch_size: int = 100) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.ingest = ingest
        self.interval_s = interval_s
        self.batch_size = batch_size
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="chat-recall-backlog-drainer", daemon=True
        )
        self._thread.start()
        logger.info("Backlog drainer started (every %.1fs)", self.interval_s)

    def stop(self, timeout_s: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout_s)
            self._thread = None

    def run_once(self) -> BacklogReport | None:
        result = self.ingest.drain_backlog(max_n=self.batch_size)
        if not result.ok:
            logger.warning("Backlog drain failed: %s", result.error)
            return None
        return result.value

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_s):
            try:
                self.run_once()
            except Exception:
                logger.exception("Backlog drain crashed; retrying next interval")
