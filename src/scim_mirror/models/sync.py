"""
Sync Models

Results flowing through one reconciliation pass: normalization outcomes, diff
classification, per-record apply results, change records and run reports.
"""

from datetime import datetime
from datetime import timezone
from typing import Any
from typing import Dict
from typing import FrozenSet
from typing import List
from typing import Optional
from typing import Set
from typing import Tuple
from typing import Union

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_serializer

from scim_mirror.enums import ChangeAction
from scim_mirror.enums import EntityType
from scim_mirror.enums import SyncStage


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ════════════════════════════════════════════════════════════════════════════
# Directory normalization
# ════════════════════════════════════════════════════════════════════════════


class Normalized(BaseModel):
    """A directory resource that normalized cleanly (a user or group yields one record, edges may yield many)."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    entities: Tuple[Any, ...]


class Skipped(BaseModel):
    """A directory resource excluded from reconciliation because a required field is blank."""

    model_config = ConfigDict(frozen=True)

    resource_id: Optional[str] = None
    reason: str


NormalizeResult = Union[Normalized, Skipped]


class RemoteSnapshot(BaseModel):
    """
    Every valid canonical record of one entity type, keyed by record key (last occurrence wins).

    skipped_ids holds the ids of invalid resources; their local records are left untouched.
    """

    entity_type: EntityType
    records: Dict[str, Any] = Field(default_factory=dict)
    skipped_ids: Set[str] = Field(default_factory=set)
    fetched: int = 0
    skipped: int = 0


# ════════════════════════════════════════════════════════════════════════════
# Diff
# ════════════════════════════════════════════════════════════════════════════


class UpdateOp(BaseModel):
    """A record present on both sides whose comparable fields differ."""

    model_config = ConfigDict(frozen=True)

    record: Any
    changed_fields: FrozenSet[str]

    @property
    def entity_id(self) -> str:
        return self.record.key


class DiffResult(BaseModel):
    """Classification of every remote and local key of one entity type. Lists are sorted by key."""

    to_insert: List[Any] = Field(default_factory=list)
    to_update: List[UpdateOp] = Field(default_factory=list)
    to_delete: List[str] = Field(default_factory=list)
    unchanged: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.to_insert or self.to_update or self.to_delete)


# ════════════════════════════════════════════════════════════════════════════
# Apply
# ════════════════════════════════════════════════════════════════════════════


class ChangeRecord(BaseModel):
    """One applied effect on the mirror."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    action: ChangeAction
    changed_fields: Optional[FrozenSet[str]] = None  # UPDATED only
    timestamp: datetime = Field(default_factory=utc_now)

    @field_serializer("changed_fields")
    def _sorted_fields(self, value: Optional[FrozenSet[str]]):
        return sorted(value) if value is not None else None


class Applied(BaseModel):
    """Per-record apply result: the write succeeded."""

    model_config = ConfigDict(frozen=True)

    change: ChangeRecord


class Failed(BaseModel):
    """Per-record apply result: the store rejected the write; the batch continued."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    action: ChangeAction
    reason: str


RecordResult = Union[Applied, Failed]


class RunStats(BaseModel):
    """Counters for one entity-type stage."""

    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def has_changes(self) -> bool:
        return (self.inserted + self.updated + self.deleted) > 0


class ApplyOutcome(BaseModel):
    """Aggregated result of applying one DiffResult."""

    entity_type: EntityType
    stats: RunStats = Field(default_factory=RunStats)
    changes: List[ChangeRecord] = Field(default_factory=list)
    failures: List[Failed] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return self.stats.has_changes


# ════════════════════════════════════════════════════════════════════════════
# Orchestration
# ════════════════════════════════════════════════════════════════════════════


class StageReport(BaseModel):
    """What one stage of a pass did."""

    stage: SyncStage
    entity_type: EntityType
    success: bool
    error: Optional[str] = None
    stats: RunStats = Field(default_factory=RunStats)


class RunReport(BaseModel):
    """Statistics of one reconciliation pass across all stages."""

    run_id: str
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    state: SyncStage = SyncStage.SYNC_USERS
    skipped: bool = False  # True when another pass was still running
    stages: List[StageReport] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.skipped and all(stage.success for stage in self.stages)
