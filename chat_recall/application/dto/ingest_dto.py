from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BacklogReport:
    """Outcome of one drain pass over the ingestion backlog."""

    succeeded: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed
