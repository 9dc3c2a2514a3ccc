from __future__ import annotations

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from ...errors import NotFoundError, ProviderError, ValidationError
from ...services.job_orchestrator import JobOrchestrator
from ..deps import get_orchestrator


router = APIRouter(prefix="/api/video", tags=["video"])


@router.post("/create")
def create_video(payload: dict = Body(...), orchestrator: JobOrchestrator = Depends(get_orchestrator)) -> dict:
    try:
        return orchestrator.submit_job(payload.get("scenes"), payload.get("settings"))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/status/{job_id}")
def video_status(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)) -> dict:
    try:
        return orchestrator.get_job_status(job_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc


@router.get("/jobs")
def list_jobs(orchestrator: JobOrchestrator = Depends(get_orchestrator)) -> dict:
    jobs = orchestrator.list_jobs()
    return {"jobs": jobs, "count": len(jobs)}


@router.get("/provider/status")
def provider_status(orchestrator: JobOrchestrator = Depends(get_orchestrator)) -> dict:
    return orchestrator.provider_status()


@router.get("/popular")
def popular_videos(
    per_page: int = Query(15, ge=1, le=80),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> dict:
    try:
        videos = orchestrator.popular_videos(per_page)
    except ProviderError as exc:
        raise HTTPException(status_code=exc.status_code or 502, detail=str(exc)) from exc
    return {"videos": videos, "count": len(videos)}
