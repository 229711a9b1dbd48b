"""Sync trigger, status, history and export routes."""
from dataclasses import asdict
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from tasksync.models.sync import SyncLog
from tasksync.sync.service import SyncService

router = APIRouter()


def get_sync_service(request: Request) -> SyncService:
    """FastAPI dependency: the process-wide SyncService built at startup."""
    return request.app.state.sync_service


class SyncTriggerRequest(BaseModel):
    force: bool = False


class SyncResultResponse(BaseModel):
    success: bool
    uploaded_count: int
    downloaded_count: int
    error_count: int
    duration_ms: int
    message: str
    error: Optional[str]
    last_sync_time: Optional[datetime]
    skipped: bool


class SyncStatusResponse(BaseModel):
    online: bool
    in_progress: bool
    last_sync_time: Optional[datetime]
    configured: bool
    state: str


class ConnectionResponse(BaseModel):
    online: bool


class ExportRequest(BaseModel):
    clear_remote_first: bool = False
    skip_existing: bool = True
    batch_size: int = 10


class TableExportResponse(BaseModel):
    exported: int
    skipped: int
    errors: int
    error: Optional[str]


class ExportResponse(BaseModel):
    success: bool
    total_exported: int
    total_skipped: int
    total_errors: int
    tables: Dict[str, TableExportResponse]
    duration_ms: int
    error: Optional[str]


@router.post("/trigger", response_model=SyncResultResponse)
async def trigger_sync(
    request: SyncTriggerRequest,
    service: SyncService = Depends(get_sync_service),
):
    """
    Run one sync pass and return its result.
    A pass already in flight makes this return success=false immediately.
    """
    result = await service.sync(force=request.force)
    return SyncResultResponse(**asdict(result))


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(service: SyncService = Depends(get_sync_service)):
    """Return online / in-progress flags and the last successful sync time."""
    return SyncStatusResponse(**asdict(service.get_status()))


@router.post("/check", response_model=ConnectionResponse)
async def check_connection(service: SyncService = Depends(get_sync_service)):
    return ConnectionResponse(online=await service.check_connection())


@router.get("/history", response_model=List[SyncLog])
async def sync_history(
    limit: int = Query(default=10, ge=1, le=100),
    service: SyncService = Depends(get_sync_service),
):
    """Return the most recent sync passes, newest first."""
    return await service.get_history(limit)


@router.post("/export", response_model=ExportResponse)
async def export_all(
    request: ExportRequest,
    service: SyncService = Depends(get_sync_service),
):
    """One-shot copy of every local row to the remote store."""
    report = await service.export_all(
        clear_remote_first=request.clear_remote_first,
        skip_existing=request.skip_existing,
        batch_size=request.batch_size,
    )
    return ExportResponse(**asdict(report))


@router.delete("/metadata")
async def reset_metadata(service: SyncService = Depends(get_sync_service)):
    """Forget all sync metadata and history (every record becomes untracked)."""
    await service.reset()
    return {"message": "Sync metadata cleared"}
