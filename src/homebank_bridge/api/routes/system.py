import os
import shutil
import tempfile
from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from homebank_bridge.api.dependencies import get_system_service, require_admin
from homebank_bridge.api.schemas import SettingUpdate
from homebank_bridge.logger import get_logger
from homebank_bridge.services.system import SystemService, backup_filename

logger = get_logger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"], dependencies=[Depends(require_admin)])


@router.get("/backup")
async def download_backup(
    system: Annotated[SystemService, Depends(get_system_service)],
) -> FileResponse:
    snapshot = system.backup()
    filename = backup_filename()
    logger.info("[SYSTEM] Serving backup %s.", filename)
    return FileResponse(
        snapshot,
        media_type="application/octet-stream",
        filename=filename,
        background=BackgroundTask(os.unlink, snapshot),
    )


@router.post("/restore")
async def restore_backup(
    system: Annotated[SystemService, Depends(get_system_service)],
    database: Annotated[UploadFile, File()],
) -> dict[str, str]:
    fd, temp_name = tempfile.mkstemp(prefix="homebank-restore-", suffix=".db")
    try:
        with os.fdopen(fd, "wb") as handle:
            shutil.copyfileobj(database.file, handle)
        system.restore(temp_name)
    finally:
        os.unlink(temp_name)
        await database.close()
    return {"message": "Database restored successfully."}


@router.post("/reset")
async def reset_database(
    system: Annotated[SystemService, Depends(get_system_service)],
) -> dict[str, str]:
    system.reset()
    return {"message": "Database reset successfully"}


@router.get("/settings")
async def read_settings(
    system: Annotated[SystemService, Depends(get_system_service)],
) -> dict[str, str]:
    return system.get_settings()


@router.put("/settings/{key}")
async def write_setting(
    key: str,
    req: SettingUpdate,
    system: Annotated[SystemService, Depends(get_system_service)],
) -> dict[str, str]:
    return system.update_setting(key, req.value)
