from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from ...config import Settings
from ..deps import get_app_settings


router = APIRouter(tags=["files"])


@router.get("/output/{filename}")
def download_output(filename: str, settings: Settings = Depends(get_app_settings)) -> FileResponse:
    output_dir = Path(settings.output_dir).resolve()
    path = (output_dir / filename).resolve()
    if path.parent != output_dir or not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path, media_type="video/mp4", filename=path.name)
