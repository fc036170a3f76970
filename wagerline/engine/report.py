"""
wagerline.engine.report — Batch Job Summary
============================================
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class JobReport:
    """Summary returned by every batch job.

    ``failures`` holds one entry per account whose unit of work raised; the
    job keeps going after recording it.
    """

    job: str
    processed: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    failures: list[dict] = field(default_factory=list)

    def record_failure(self, account_id: int, exc: Exception) -> None:
        self.failed += 1
        self.failures.append({"account_id": account_id, "error": repr(exc)})

    def to_dict(self) -> dict:
        return {
            "job": self.job,
            "processed": self.processed,
            "created": self.created,
            "skipped": self.skipped,
            "failed": self.failed,
            "failures": self.failures,
        }
