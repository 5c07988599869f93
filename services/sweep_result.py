from collections import Counter
from typing import Dict

from pydantic import BaseModel, Field


class SweepResult(BaseModel):
    """Counts reported back to the scheduler after one sweep."""

    candidates: int = 0
    actions: int = 0
    errors: int = 0
    purged: int = 0
    outcomes: Dict[str, int] = Field(default_factory=dict)

    def tally(self, outcome: str, action: bool = False) -> None:
        counts = Counter(self.outcomes)
        counts[outcome] += 1
        self.outcomes = dict(counts)
        if action:
            self.actions += 1
