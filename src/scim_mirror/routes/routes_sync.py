"""Endpoints for polling sync changes and triggering a pass on demand."""

from typing import Any
from typing import Dict

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import status
from loguru import logger

from scim_mirror.dependencies import get_notifier
from scim_mirror.dependencies import get_orchestrator
from scim_mirror.schemas.schemas import RunReportResponse
from scim_mirror.sync.notifier import ChangeNotifier
from scim_mirror.sync.orchestrator import SyncOrchestrator

ROUTER_SYNC = APIRouter(tags=["Sync"])


@ROUTER_SYNC.get(
    "/sync/notification",
    responses={
        status.HTTP_200_OK: {
            "description": "Latest changing sync results",
            "content": {
                "application/json": {
                    "example": {
                        "hasChanges": True,
                        "users": {
                            "fetched": 120,
                            "inserted": 1,
                            "updated": 0,
                            "deleted": 0,
                            "unchanged": 118,
                            "skipped": 1,
                            "failed": 0,
                            "changes": [
                                {
                                    "entity_id": "u1",
                                    "action": "INSERTED",
                                    "changed_fields": None,
                                    "timestamp": "2026-01-05T12:00:00Z",
                                }
                            ],
                        },
                    }
                }
            },
        }
    },
)
async def get_sync_notification(notifier: ChangeNotifier = Depends(get_notifier)) -> Dict[str, Any]:
    """Current change aggregate. Reading does not clear it."""
    return notifier.consume()


@ROUTER_SYNC.post("/sync/notification/clear")
async def clear_sync_notification(notifier: ChangeNotifier = Depends(get_notifier)) -> Dict[str, Any]:
    """Reset the change aggregate after the caller has processed it."""
    notifier.clear()
    return {"message": "Notifications cleared", "hasChanges": False}


@ROUTER_SYNC.post(
    "/sync/run",
    response_model=RunReportResponse,
    responses={
        status.HTTP_409_CONFLICT: {
            "description": "A sync pass is already running",
            "content": {"application/json": {"example": {"detail": "A sync pass is already running"}}},
        },
    },
)
async def run_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Run one reconciliation pass now and return its report."""
    if orchestrator.is_running:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A sync pass is already running")

    logger.info("Manual sync pass requested")
    report = await orchestrator.run_once()
    if report.skipped:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A sync pass is already running")

    return RunReportResponse.from_report(report)
