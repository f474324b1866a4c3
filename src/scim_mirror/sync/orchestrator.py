"""
Sync Orchestrator

Runs one reconciliation pass: users, groups, memberships by user, then
memberships by group. Each stage fetches its remote and local snapshots
concurrently, diffs, applies and publishes. A failing stage is reported and
the following stages still run; earlier stages stay committed.
"""

import asyncio
import uuid

from loguru import logger

from scim_mirror.directory.reader import DirectoryReader
from scim_mirror.enums import STAGE_ENTITY_TYPES
from scim_mirror.enums import EntityType
from scim_mirror.enums import SyncStage
from scim_mirror.exceptions import DirectoryUnavailable
from scim_mirror.models.sync import RunReport
from scim_mirror.models.sync import StageReport
from scim_mirror.models.sync import utc_now
from scim_mirror.sync.apply import ApplyEngine
from scim_mirror.sync.diff import diff
from scim_mirror.sync.diff import protected_keys
from scim_mirror.sync.notifier import ChangeNotifier
from scim_mirror.sync.snapshot import SnapshotLoader


class SyncOrchestrator:
    """Sequences the stages of a pass and guarantees passes never overlap."""

    def __init__(
        self,
        reader: DirectoryReader,
        snapshot_loader: SnapshotLoader,
        apply_engine: ApplyEngine,
        notifier: ChangeNotifier,
    ):
        self.reader = reader
        self.snapshot_loader = snapshot_loader
        self.apply_engine = apply_engine
        self.notifier = notifier
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> RunReport:
        """
        Run one full pass, or skip it when a pass is already in progress.

        Never raises: stage failures are captured in the returned report.
        """
        report = RunReport(run_id=uuid.uuid4().hex)

        if self._lock.locked():
            logger.warning("Sync pass already running, skipping", run_id=report.run_id)
            report.skipped = True
            report.finished_at = utc_now()
            return report

        async with self._lock:
            with logger.contextualize(run_id=report.run_id):
                logger.info("Sync pass started")

                for stage, entity_type in STAGE_ENTITY_TYPES.items():
                    report.state = stage
                    report.stages.append(await self._run_stage(stage, entity_type))

                report.state = SyncStage.DONE
                report.finished_at = utc_now()

                failed = [s.stage.value for s in report.stages if not s.success]
                if failed:
                    logger.warning("Sync pass finished with failed stages", failed_stages=failed)
                else:
                    logger.success("Sync pass finished")

        return report

    async def _run_stage(self, stage: SyncStage, entity_type: EntityType) -> StageReport:
        with logger.contextualize(stage=stage.value):
            try:
                remote, local = await asyncio.gather(
                    self.reader.fetch_snapshot(entity_type),
                    self.snapshot_loader.load_all(entity_type),
                )
                result = diff(
                    remote.records,
                    local,
                    protected=protected_keys(entity_type, remote.skipped_ids, local),
                )
                outcome = await self.apply_engine.apply(
                    entity_type,
                    result,
                    skipped=remote.skipped,
                    fetched=remote.fetched,
                )
                self.notifier.publish(entity_type, outcome)
            except DirectoryUnavailable as e:
                logger.error("Directory unavailable, stage aborted", error=str(e), status_code=e.status_code)
                return StageReport(stage=stage, entity_type=entity_type, success=False, error=str(e))
            except Exception as e:
                logger.exception(f"Sync stage failed: {e}")
                return StageReport(stage=stage, entity_type=entity_type, success=False, error=str(e))

            return StageReport(stage=stage, entity_type=entity_type, success=True, stats=outcome.stats)
