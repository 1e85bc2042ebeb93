"""Reconciliation outcomes and run result structures."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from snapwatch.models.config import Recipient, ViewportConfig


class Action(str, Enum):
    ADOPT_BASELINE = "adopt_baseline"
    COMPARE = "compare"
    SKIP = "skip"


class BaselineState(str, Enum):
    CAPTURE_FAILED = "capture_failed"  # no image this run
    NO_BASELINE = "no_baseline"  # nothing adopted yet
    STALE = "stale"  # desired version ahead of stored
    CURRENT = "current"  # desired version equals stored
    AHEAD = "ahead"  # stored version ahead of desired


class Evidence(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_image_ref: str
    diff_image_ref: str


class Outcome(BaseModel):
    """Decision and evidence for one (target, viewport) in one run."""
    model_config = ConfigDict(frozen=True)

    action: Action
    state: Optional[BaselineState] = None  # None when the stored record could not be read
    target_id: str
    target_url: str
    viewport: ViewportConfig
    tolerance_percent: float = 0.0
    desired_version: int = 0
    baseline_version: Optional[int] = None  # stored version after this run
    baseline_image_ref: Optional[str] = None
    mismatch_percent: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    evidence: Optional[Evidence] = None
    diagnostics: list[str] = Field(default_factory=list)

    @property
    def is_regression(self) -> bool:
        return (
            self.action == Action.COMPARE
            and self.mismatch_percent is not None
            and self.mismatch_percent > self.tolerance_percent
        )

    @property
    def is_alert_worthy(self) -> bool:
        return self.is_regression or bool(self.diagnostics)


class AlertBatch(BaseModel):
    recipient: Recipient
    outcomes: list[Outcome] = Field(default_factory=list)


class BaselineNotice(BaseModel):
    """Successful baseline adoptions for one recipient in one run."""
    recipient: Recipient
    outcomes: list[Outcome] = Field(default_factory=list)


class OutcomeEntry(BaseModel):
    recipient: Recipient
    outcome: Outcome


class RunResult(BaseModel):
    run_id: str
    started_at: str
    completed_at: str
    duration_seconds: float = 0.0
    total: int = 0
    adopted: int = 0
    compared: int = 0
    skipped: int = 0
    regressions: int = 0
    recipients_alerted: int = 0
    entries: list[OutcomeEntry] = Field(default_factory=list)
