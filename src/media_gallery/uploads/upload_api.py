"""HTTP routes for media uploads and deletion."""

from __future__ import annotations

import logging

from fastapi import APIRouter, File, HTTPException, UploadFile, status

from ..exceptions import InvalidMediaNameError, MediaNotFoundError, UploadRejectedError
from .upload_service import UploadService

logger = logging.getLogger(__name__)


def build_upload_router(service: UploadService) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["uploads"])

    @router.post("/upload")
    async def upload_files(files: list[UploadFile] | None = File(None)) -> dict[str, list[str]]:
        try:
            stored = await service.store_uploads(files or [])
        except UploadRejectedError as exc:
            logger.warning("upload.rejected", extra={"reason": str(exc)})
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"status": "error", "reason": str(exc)},
            ) from exc
        except OSError as exc:
            logger.exception("upload.failed")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"status": "error", "reason": "upload_failed"},
            ) from exc
        return {"uploaded": stored}

    @router.delete("/media/{name}")
    async def delete_media(name: str) -> dict[str, str]:
        try:
            await service.delete_media(name)
        except InvalidMediaNameError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"status": "error", "reason": "invalid_name"},
            ) from exc
        except MediaNotFoundError as exc:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"status": "error", "reason": "not_found"},
            ) from exc
        except OSError as exc:
            logger.exception("media.delete.failed", extra={"media": name})
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"status": "error", "reason": "delete_failed"},
            ) from exc
        return {"deleted": name}

    return router
