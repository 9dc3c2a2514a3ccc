from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends

from ... import __version__
from ...config import Settings
from ...utils.file_utils import check_disk_usage
from ..deps import get_app_settings


router = APIRouter(tags=["system"])


@router.get("/health")
def health(settings: Settings = Depends(get_app_settings)) -> dict:
    return {
        "status": "OK",
        "timestamp": datetime.now().isoformat(),
        "version": __version__,
        "disk": check_disk_usage(settings.temp_dir, settings.output_dir),
    }


@router.get("/")
def index() -> dict:
    return {
        "service": "stock-video-assembler",
        "version": __version__,
        "endpoints": {
            "create": "POST /api/video/create",
            "status": "GET /api/video/status/{job_id}",
            "jobs": "GET /api/video/jobs",
            "popular": "GET /api/video/popular",
            "provider": "GET /api/video/provider/status",
            "output": "GET /output/{filename}",
            "health": "GET /health",
        },
    }
