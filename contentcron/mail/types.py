from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BatchResult:
    index: int
    attempted: int
    succeeded: int
    message_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class DeliveryReport:
    batches: list[BatchResult] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return sum(batch.attempted for batch in self.batches)

    @property
    def success_count(self) -> int:
        return sum(batch.succeeded for batch in self.batches)

    @property
    def failed_batches(self) -> list[BatchResult]:
        return [batch for batch in self.batches if not batch.ok]
