"""Rutas de media: servir archivos (público) y gestión desde el panel"""
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from shared.config import settings
from shared.database.session import get_db
from shared.database.models import User
from shared.auth.dependencies import get_current_admin, get_current_staff
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.admin.models.admin import DeleteResponse
from services.media.models.media import MediaResponse, MediaListResponse, media_response
from services.media.services.media_service import media_service


router = APIRouter()
admin_router = APIRouter()


@router.get("/{media_id}")
@limiter.limit(RATE_LIMITS["public"])
async def serve_media(
    request: Request,  # Necesario para rate limiter
    media_id: str,
    db: AsyncSession = Depends(get_db)
):
    """Servir el archivo tal como se subió. El contenido es inmutable."""
    data, content_type = await media_service.get_content(db, media_id)
    return Response(
        content=data,
        media_type=content_type,
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )


# ==================== PANEL ====================

@admin_router.get("", response_model=MediaListResponse)
async def list_media(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    content_type: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """Listar archivos. Requiere admin o editor"""
    result = await media_service.list_media(
        db, page=page, limit=limit, search=search, content_type=content_type
    )
    return MediaListResponse(
        items=[media_response(media) for media in result["items"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        total_pages=result["total_pages"],
    )


@admin_router.post("", response_model=MediaResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["admin"])
async def upload_media(
    request: Request,  # Necesario para rate limiter
    file: UploadFile = File(...),
    alt: str = Form(""),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """
    Subir un archivo (multipart, campo "file")

    Imágenes JPEG/PNG/GIF/WebP o PDF, hasta MEDIA_MAX_FILE_SIZE.
    Requiere admin o editor.
    """
    # Un byte más que el máximo alcanza para detectar el exceso
    data = await file.read(settings.MEDIA_MAX_FILE_SIZE + 1)
    media = await media_service.upload(
        db, file.filename, file.content_type, data, current_user, alt=alt
    )
    return media_response(media)


@admin_router.get("/{media_id}", response_model=MediaResponse)
async def get_media(
    media_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    media = await media_service.get(db, media_id)
    return media_response(media)


@admin_router.delete("/{media_id}", response_model=DeleteResponse)
async def delete_media(
    media_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """Eliminar archivo. Requiere admin"""
    await media_service.delete(db, media_id, current_user)
    return DeleteResponse(message="Archivo eliminado", id=media_id)
