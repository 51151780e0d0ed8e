from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, field_validator

from core.errors import StoreError
from core.textnorm import sanitize_name
from tracking.scheduler import NotificationScheduler
from tracking.service import TrackingService

router = APIRouter()


def get_service(request: Request) -> TrackingService:
    return request.app.state.tracking


def get_scheduler(request: Request) -> NotificationScheduler:
    return request.app.state.scheduler


class CheckPayload(BaseModel):
    name: str
    year_label: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _clean_name(cls, v):
        return sanitize_name(v)

    @field_validator("year_label", mode="before")
    @classmethod
    def _nz(cls, v):
        return (v or "").strip() or None


@router.get("/names")
async def list_tracked_names(
    service: Annotated[TrackingService, Depends(get_service)],
):
    try:
        entries = await service.registry.list_all()
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return {
        "count": len(entries),
        "names": [
            {"user_id": uid, "name": n.value, "time_stamp": n.created_at.isoformat()}
            for uid, n in entries
        ],
    }


@router.get("/users/{user_id}/names")
async def list_user_names(
    user_id: str,
    service: Annotated[TrackingService, Depends(get_service)],
):
    try:
        names = await service.registry.names_for(user_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if not names:
        raise HTTPException(status_code=404, detail="User not found")
    return {
        "user_id": user_id,
        "names": [{"name": n.value, "time_stamp": n.created_at.isoformat()} for n in names],
    }


@router.post("/check")
async def check_name(
    payload: CheckPayload,
    service: Annotated[TrackingService, Depends(get_service)],
):
    if not payload.name:
        raise HTTPException(status_code=422, detail="name is empty")
    result = await service.client.check(payload.name, payload.year_label)
    return {
        "name": result.name,
        "year_label": result.year_label,
        "status": result.status.value,
        "years": sorted(result.years),
        "error": type(result.error).__name__ if result.error else None,
    }


@router.post("/sweep")
async def trigger_sweep(
    scheduler: Annotated[NotificationScheduler, Depends(get_scheduler)],
):
    report = await scheduler.run_sweep()
    if report is None:
        raise HTTPException(status_code=409, detail="A sweep is already running")
    return {"ok": True, "report": report.as_dict()}
