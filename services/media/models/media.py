"""Modelos Pydantic para archivos de media"""
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime


class MediaResponse(BaseModel):
    """Metadatos del archivo; los bytes se sirven en /api/media/{id}"""
    id: str
    original_name: str
    content_type: str
    size_bytes: int
    alt: str
    url: str
    created_by: Optional[str] = None
    created_at: datetime


class MediaListResponse(BaseModel):
    items: List[MediaResponse]
    total: int
    page: int
    limit: int
    total_pages: int


def media_response(media) -> MediaResponse:
    return MediaResponse(
        id=str(media.id),
        original_name=media.original_name,
        content_type=media.content_type,
        size_bytes=media.size_bytes,
        alt=media.alt or "",
        url=f"/api/media/{media.id}",
        created_by=str(media.created_by) if media.created_by else None,
        created_at=media.created_at,
    )
