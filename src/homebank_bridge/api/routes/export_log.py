import re
from typing import Annotated

from fastapi import APIRouter, Depends, Response

from homebank_bridge.api.dependencies import get_export_log, require_auth
from homebank_bridge.api.schemas import ExportLogCreate
from homebank_bridge.core import settings
from homebank_bridge.core.errors import PayloadTooLargeError
from homebank_bridge.models import ExportLogEntry
from homebank_bridge.repositories.export_log_repository import ExportLogRepository

router = APIRouter(prefix="/api/export-log", tags=["export-log"], dependencies=[Depends(require_auth)])

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_filename(filename: str) -> str:
    """Make ``filename`` safe to put in a Content-Disposition header."""
    stripped = filename.replace("\r", "").replace("\n", "")
    return _UNSAFE_FILENAME_CHARS.sub("_", stripped) or "export.csv"


@router.get("", response_model=list[ExportLogEntry])
async def list_export_log(
    export_log: Annotated[ExportLogRepository, Depends(get_export_log)],
) -> list[ExportLogEntry]:
    return export_log.list_all()


@router.post("")
async def create_export_log(
    req: ExportLogCreate,
    export_log: Annotated[ExportLogRepository, Depends(get_export_log)],
) -> dict[str, int]:
    max_bytes = settings.get_env_int(
        "EXPORT_LOG_MAX_BYTES",
        settings.DEFAULT_EXPORT_LOG_MAX_BYTES,
        min_value=1,
    )
    if len(req.csv_content.encode("utf-8")) > max_bytes:
        raise PayloadTooLargeError(f"Payload too large (max {max_bytes} bytes)")
    return {"id": export_log.create(req.filename, req.count, req.csv_content)}


@router.get("/{entry_id}/download")
async def download_export(
    entry_id: int,
    export_log: Annotated[ExportLogRepository, Depends(get_export_log)],
) -> Response:
    entry = export_log.get_content(entry_id)
    return Response(
        content=entry["csv_content"] or "",
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{safe_filename(entry["filename"])}"'},
    )


@router.get("/{entry_id}/preview")
async def preview_export(
    entry_id: int,
    export_log: Annotated[ExportLogRepository, Depends(get_export_log)],
) -> dict[str, str]:
    entry = export_log.get_content(entry_id)
    return {"content": entry["csv_content"] or ""}


@router.delete("/{entry_id}")
async def delete_export(
    entry_id: int,
    export_log: Annotated[ExportLogRepository, Depends(get_export_log)],
) -> dict[str, bool]:
    export_log.delete(entry_id)
    return {"success": True}


@router.delete("")
async def clear_export_log(
    export_log: Annotated[ExportLogRepository, Depends(get_export_log)],
) -> dict[str, bool]:
    export_log.delete_all()
    return {"success": True}
