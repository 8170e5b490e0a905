"""Rutas públicas del catálogo (no requieren autenticación)"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from shared.database.session import get_db
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.catalog.models.catalog import (
    ShowResponse,
    ShowsListResponse,
    PageResponse,
    FAQResponse,
    SiteSettingsResponse,
    show_response,
    page_response,
    faq_response,
)
from services.catalog.services.show_service import show_service
from services.catalog.services.page_service import page_service
from services.catalog.services.faq_service import faq_service
from services.catalog.services.settings_service import site_settings_service


router = APIRouter()


@router.get("/shows", response_model=ShowsListResponse)
@limiter.limit(RATE_LIMITS["public"])
async def list_shows(
    request: Request,  # Necesario para rate limiter
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    search: Optional[str] = Query(None, description="Búsqueda por título o descripción"),
    status: Optional[str] = Query(None, description="available, sold_out, closed, few_left"),
    featured: Optional[bool] = Query(None),
    archived: bool = Query(False),
    start_date: Optional[str] = Query(None, description="Fecha ISO desde"),
    end_date: Optional[str] = Query(None, description="Fecha ISO hasta"),
    tags: Optional[str] = Query(None, description="Tags separados por coma"),
    db: AsyncSession = Depends(get_db)
):
    """Listar funciones publicadas"""
    result = await show_service.list_shows(
        db,
        page=page,
        limit=limit,
        search=search,
        status=status,
        featured=featured,
        archived=archived,
        start_date=start_date,
        end_date=end_date,
        tags=[tag.strip() for tag in tags.split(",") if tag.strip()] if tags else None,
    )
    return ShowsListResponse(
        items=[show_response(show) for show in result["items"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        total_pages=result["total_pages"],
    )


@router.get("/shows/featured", response_model=List[ShowResponse])
async def featured_shows(
    limit: int = Query(6, ge=1, le=50),
    db: AsyncSession = Depends(get_db)
):
    shows = await show_service.get_featured(db, limit=limit)
    return [show_response(show) for show in shows]


@router.get("/shows/upcoming", response_model=List[ShowResponse])
async def upcoming_shows(
    limit: int = Query(12, ge=1, le=50),
    db: AsyncSession = Depends(get_db)
):
    shows = await show_service.get_upcoming(db, limit=limit)
    return [show_response(show) for show in shows]


@router.get("/shows/slug/{slug}", response_model=ShowResponse)
async def get_show_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    show = await show_service.get_show_by_slug(db, slug)
    return show_response(show)


@router.get("/shows/{show_id}", response_model=ShowResponse)
async def get_show(show_id: str, db: AsyncSession = Depends(get_db)):
    show = await show_service.get_show(db, show_id)
    return show_response(show)


@router.get("/pages/{key}", response_model=PageResponse)
async def get_page(key: str, db: AsyncSession = Depends(get_db)):
    page = await page_service.get_page(db, key)
    return page_response(page)


@router.get("/site-settings", response_model=SiteSettingsResponse)
async def get_site_settings(db: AsyncSession = Depends(get_db)):
    """Configuración del sitio (cacheada 5 minutos)"""
    return SiteSettingsResponse(**await site_settings_service.get(db))


@router.get("/faq", response_model=List[FAQResponse])
async def list_faq(db: AsyncSession = Depends(get_db)):
    """Preguntas frecuentes activas, agrupadas por categoría"""
    faqs = await faq_service.list_active(db)
    return [faq_response(faq) for faq in faqs]
