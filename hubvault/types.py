################################################################################
# HUBVAULT
#
# @file:        types.py
# @module:      hubvault.types
# @description: Shared data models for snapshots, retention, services and run records.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Snapshot is immutable and parsed from `restic snapshots --json`
# - RetentionPolicy.apply mirrors restic's keep-daily/weekly/monthly buckets
# - OperationRecord is ephemeral: it only feeds logs and notifications
################################################################################

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .helpers.constants import (
    DEFAULT_RETENTION_DAILY,
    DEFAULT_RETENTION_MONTHLY,
    DEFAULT_RETENTION_WEEKLY,
)

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_restic_time(value: str) -> datetime:
    """
    Parse restic's RFC3339 timestamps (nanosecond precision, 'Z' suffix).

    Naive results are assumed to be UTC.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # datetime only handles microseconds
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---- Snapshots & retention ----

@dataclass(frozen=True)
class Snapshot:
    id: str
    time: datetime
    short_id: str = ""
    tags: Tuple[str, ...] = ()
    paths: Tuple[str, ...] = ()
    hostname: str = ""

    @classmethod
    def from_restic(cls, data: Dict[str, Any]) -> Snapshot:
        snap_id = data.get("id") or ""
        return cls(
            id=snap_id,
            short_id=data.get("short_id") or snap_id[:8],
            time=parse_restic_time(data.get("time") or "1970-01-01T00:00:00Z"),
            tags=tuple(data.get("tags") or ()),
            paths=tuple(data.get("paths") or ()),
            hostname=data.get("hostname") or "",
        )

    def matches_id(self, ref: str) -> bool:
        """Full id, short id or unique-looking id prefix."""
        return bool(ref) and (self.id == ref or self.short_id == ref or self.id.startswith(ref))

    def matches_date(self, prefix: str) -> bool:
        return self.time.isoformat().startswith(prefix)


def _daily(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%d")


def _weekly(ts: datetime) -> str:
    year, week, _ = ts.isocalendar()
    return f"{year:04d}-W{week:02d}"


def _monthly(ts: datetime) -> str:
    return ts.strftime("%Y-%m")


@dataclass(frozen=True)
class RetentionPolicy:
    keep_daily: int = DEFAULT_RETENTION_DAILY
    keep_weekly: int = DEFAULT_RETENTION_WEEKLY
    keep_monthly: int = DEFAULT_RETENTION_MONTHLY

    def __post_init__(self):
        for name in ("keep_daily", "keep_weekly", "keep_monthly"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    @property
    def is_empty(self) -> bool:
        return not (self.keep_daily or self.keep_weekly or self.keep_monthly)

    def rules(self) -> List[Tuple[str, int, Callable[[datetime], str]]]:
        return [
            ("daily", self.keep_daily, _daily),
            ("weekly", self.keep_weekly, _weekly),
            ("monthly", self.keep_monthly, _monthly),
        ]

    def apply(
        self, snapshots: Iterable[Snapshot], protect: Sequence[str] = ()
    ) -> Tuple[List[Snapshot], List[Snapshot]]:
        """
        Split snapshots into (keep, remove), both newest first.

        Walking newest to oldest, a rule keeps a snapshot when its bucket
        differs from the last bucket that rule kept and the rule still has
        budget. Protected ids are always kept.
        """
        ordered = sorted(snapshots, key=lambda s: s.time, reverse=True)
        if self.is_empty:
            return ordered, []

        protected = set(protect)
        budgets = {name: count for name, count, _ in self.rules()}
        last: Dict[str, Optional[str]] = {name: None for name, _, _ in self.rules()}
        keep: List[Snapshot] = []
        remove: List[Snapshot] = []

        for snap in ordered:
            kept = False
            for name, _, bucket_of in self.rules():
                if budgets[name] <= 0:
                    continue
                bucket = bucket_of(snap.time)
                if bucket != last[name]:
                    last[name] = bucket
                    budgets[name] -= 1
                    kept = True
            if kept or snap.id in protected:
                keep.append(snap)
            else:
                remove.append(snap)
        return keep, remove


# ---- Services ----

class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class ServiceState:
    service: str
    name: str = ""
    state: str = ""
    health: str = ""
    image: str = ""
    container_id: str = ""
    status: str = ""

    @property
    def is_running(self) -> bool:
        return self.state.lower() == "running"

    @classmethod
    def from_compose(cls, data: Dict[str, Any]) -> ServiceState:
        return cls(
            service=data.get("Service") or data.get("Name") or "",
            name=data.get("Name") or "",
            state=data.get("State") or "",
            health=data.get("Health") or "",
            image=data.get("Image") or "",
            container_id=data.get("ID") or "",
            status=data.get("Status") or "",
        )


@dataclass
class ImageUpdate:
    service: str
    image: str
    current_id: Optional[str]
    latest_id: Optional[str]

    @property
    def update_available(self) -> bool:
        return bool(self.latest_id) and self.current_id != self.latest_id


# ---- Operation records ----

class PipelineStage(str, Enum):
    REPO_ENSURED = "repo_ensured"
    PRE_BACKUP_SNAPSHOT_TAKEN = "pre_backup_snapshot_taken"
    SERVICES_STOPPED = "services_stopped"
    SNAPSHOT_CREATED = "snapshot_created"
    SERVICES_STARTED = "services_started"
    PRUNED = "pruned"
    VERIFIED = "verified"
    SELECTOR_RESOLVED = "selector_resolved"
    EXTRACTED = "extracted"
    CURRENT_BACKED_UP = "current_backed_up"
    SWAPPED = "swapped"
    PRE_UPDATE_BACKUP = "pre_update_backup"
    UPDATES_CHECKED = "updates_checked"
    IMAGES_UPDATED = "images_updated"
    SYSTEM_UPDATED = "system_updated"
    BLOCKLISTS_UPDATED = "blocklists_updated"
    CLEANED_UP = "cleaned_up"
    ROLLED_BACK = "rolled_back"


class OperationStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OperationRecord:
    operation: str
    status: OperationStatus = OperationStatus.RUNNING
    started_at: datetime = field(default_factory=_now)
    finished_at: Optional[datetime] = None
    stages: List[PipelineStage] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    snapshot_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def advance(self, stage: PipelineStage) -> None:
        self.stages.append(stage)

    def reached(self, stage: PipelineStage) -> bool:
        return stage in self.stages

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def succeed(self) -> None:
        self.status = OperationStatus.SUCCESS
        self.finished_at = _now()

    def fail(self, error: BaseException) -> None:
        self.status = OperationStatus.FAILURE
        self.error = str(error) or error.__class__.__name__
        self.finished_at = _now()

    @property
    def success(self) -> bool:
        return self.status == OperationStatus.SUCCESS

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or _now()
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 2),
            "stages": [s.value for s in self.stages],
            "warnings": list(self.warnings),
            "error": self.error,
            "snapshot_id": self.snapshot_id,
            "details": dict(self.details),
        }
