"""Scheduler and check-cycle result models."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from infobot.models.content import SourceKind


class SchedulerState(str, Enum):
    """Scheduler lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class SourceCheckOutcome(BaseModel):
    """Per-source result inside one check cycle."""

    source: SourceKind
    success: bool
    new_items: int = 0
    sent: int = 0
    send_failures: int = 0
    total_checked: int = 0
    error: Optional[str] = None


class CycleSummary(BaseModel):
    """Aggregate result of one check cycle."""

    started_at: datetime
    duration_seconds: float = 0.0
    outcomes: List[SourceCheckOutcome] = Field(default_factory=list)
    error_summary_sent: bool = False

    @property
    def sources_checked(self) -> int:
        return len(self.outcomes)

    @property
    def sources_succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> List[SourceCheckOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def total_new(self) -> int:
        return sum(o.new_items for o in self.outcomes)

    @property
    def total_sent(self) -> int:
        return sum(o.sent for o in self.outcomes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 2),
            "sources_checked": self.sources_checked,
            "sources_succeeded": self.sources_succeeded,
            "total_new": self.total_new,
            "total_sent": self.total_sent,
            "error_summary_sent": self.error_summary_sent,
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
        }


class ManualCheckResult(BaseModel):
    """Result returned by trigger_manual_check()."""

    success: bool
    message: str
    summary: Optional[CycleSummary] = None


class SchedulerStatus(BaseModel):
    """Snapshot returned by status()."""

    is_running: bool
    state: SchedulerState
    active_tasks: List[str] = Field(default_factory=list)
    check_interval_minutes: int
    next_check: Optional[datetime] = None
    cycle_in_progress: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
