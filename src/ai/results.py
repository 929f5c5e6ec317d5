"""Typed per-stage results for the submission pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from src.core.metrics import record_adapter_outcome


OUTCOME_SUCCESS = "success"
OUTCOME_FALLBACK = "fallback"
OUTCOME_ERROR = "error"

T = TypeVar("T")


@dataclass(frozen=True)
class StageResult(Generic[T]):
    stage: str
    value: T
    outcome: str = OUTCOME_SUCCESS
    reason: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.outcome != OUTCOME_SUCCESS

    def summary(self) -> Dict[str, Any]:
        return {"outcome": self.outcome, "reason": self.reason}


def success(stage: str, value: T) -> StageResult[T]:
    record_adapter_outcome(stage=stage, outcome=OUTCOME_SUCCESS)
    return StageResult(stage=stage, value=value)


def fallback(stage: str, value: T, reason: str) -> StageResult[T]:
    record_adapter_outcome(stage=stage, outcome=OUTCOME_FALLBACK, reason=reason)
    return StageResult(stage=stage, value=value, outcome=OUTCOME_FALLBACK, reason=reason)


def error(stage: str, value: T, reason: str) -> StageResult[T]:
    record_adapter_outcome(stage=stage, outcome=OUTCOME_ERROR, reason=reason)
    return StageResult(stage=stage, value=value, outcome=OUTCOME_ERROR, reason=reason)
