"""Aggregate results of a backup run.

Every unit of work (the sync, one vhost archive, one database dump) yields a
UnitOutcome; a job succeeds only if all of them did.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class UnitOutcome:
    """Result of one unit of work."""

    unit: str
    ok: bool
    error_detail: Optional[str] = None

    @classmethod
    def success(cls, unit: str) -> "UnitOutcome":
        return cls(unit=unit, ok=True)

    @classmethod
    def failure(cls, unit: str, detail: str) -> "UnitOutcome":
        return cls(unit=unit, ok=False, error_detail=detail)


@dataclass
class JobResult:
    """Outcomes of all units attempted during one job run."""

    outcomes: list[UnitOutcome] = field(default_factory=list)

    def add(self, outcome: UnitOutcome) -> None:
        self.outcomes.append(outcome)

    def extend(self, outcomes) -> None:
        self.outcomes.extend(outcomes)

    @property
    def success(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failed(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def succeeded(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if o.ok]

    def summary(self) -> str:
        """One-line summary for the end of the log."""
        return f"{len(self.succeeded)} unit(s) succeeded, {len(self.failed)} failed"
