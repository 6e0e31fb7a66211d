import base64
import logging
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.responses import Response

from .config import Settings, get_settings
from .models import NormalizeResponse, HealthResponse
from .normalize import normalize_file_bytes
from .workbook import WorkbookReadError, WorkbookWriteError, file_extension

logger = logging.getLogger(__name__)

app = FastAPI(
    title="sheet-normalizer",
    description="Fixed-decimal spreadsheet normalization for remittance pipelines",
    version="0.1.0",
)


async def _read_upload(file: UploadFile, settings: Settings) -> bytes:
    filename = file.filename or ""
    if file_extension(filename) not in settings.allowed_extensions:
        allowed = ", ".join(settings.allowed_extensions)
        raise HTTPException(status_code=422, detail=f"Only {allowed} files are supported")

    raw = await file.read()
    if len(raw) > settings.max_file_size_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds {settings.max_file_size_mb} MB limit",
        )
    return raw


def _normalize(raw: bytes, filename: str, settings: Settings) -> dict:
    try:
        return normalize_file_bytes(raw, filename, settings.rules())
    except (WorkbookReadError, WorkbookWriteError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.get("/health", response_model=HealthResponse)
def health():
    return {"ok": True}

@app.post("/normalize", response_model=NormalizeResponse)
async def normalize_upload(
    file: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
):
    raw = await _read_upload(file, settings)
    return _normalize(raw, file.filename, settings)


@app.post("/normalize/download")
async def normalize_download(
    file: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
):
    raw = await _read_upload(file, settings)
    result = _normalize(raw, file.filename, settings)

    out = result["normalized_file"]
    logger.info("Serving %s", out["filename"])
    return Response(
        content=base64.b64decode(out["content_b64"]),
        media_type=out["media_type"],
        headers={
            "Content-Disposition": f"attachment; filename*=utf-8''{quote(out['filename'])}",
            "X-Content-SHA256": out["sha256"],
        },
    )
