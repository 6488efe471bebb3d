"""HTTP routes for the media listing and bulk download."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Header, Query, status
from fastapi.responses import JSONResponse, Response, StreamingResponse

from ..exceptions import AppError
from ..media.archive_service import ARCHIVE_CACHE_CONTROL
from .gallery_service import GalleryService, clamp_page

logger = logging.getLogger(__name__)


def build_gallery_router(service: GalleryService) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["gallery"])

    @router.get("/media", response_model=None)
    async def list_media(
        offset: int = Query(0),
        limit: int = Query(50),
    ) -> dict[str, Any] | JSONResponse:
        page_offset, page_limit = clamp_page(offset, limit)
        try:
            return await service.list_page(page_offset, page_limit)
        except (AppError, OSError):
            logger.exception(
                "gallery.list.failed",
                extra={"offset": page_offset, "limit": page_limit},
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Failed to list media."},
            )

    @router.get("/download-all", response_model=None)
    async def download_all(
        if_none_match: str | None = Header(None),
    ) -> Response:
        try:
            download = await service.prepare_download(if_none_match)
        except (AppError, OSError):
            logger.exception("gallery.download.failed")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Failed to build archive."},
            )

        if download.not_modified:
            return Response(
                status_code=status.HTTP_304_NOT_MODIFIED,
                headers={"ETag": download.etag, "Cache-Control": ARCHIVE_CACHE_CONTROL},
            )

        artifact = download.artifact
        assert artifact is not None
        return StreamingResponse(
            download.iter_chunks(),
            media_type="application/zip",
            headers={
                "Content-Length": str(download.size),
                "ETag": download.etag,
                "Last-Modified": artifact.last_modified,
                "Cache-Control": ARCHIVE_CACHE_CONTROL,
                "Content-Disposition": f'attachment; filename="{artifact.download_name()}"',
            },
        )

    return router
