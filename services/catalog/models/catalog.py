"""Modelos Pydantic para el catálogo: funciones, páginas, FAQ y configuración del sitio"""
from pydantic import BaseModel, Field, AfterValidator
from typing import Optional, List, Dict, Any, Annotated
from datetime import datetime

from shared.database.models import SHOW_STATUSES


def _check_iso_date(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError("Fecha inválida, se espera ISO 8601")
    return value


def _check_status(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in SHOW_STATUSES:
        raise ValueError(f"Estado inválido. Debe ser uno de: {', '.join(SHOW_STATUSES)}")
    return value


IsoDate = Annotated[str, AfterValidator(_check_iso_date)]
ShowStatus = Annotated[str, AfterValidator(_check_status)]


# ==================== SHOWS ====================

class TicketTier(BaseModel):
    """Precio de un tipo de entrada"""
    label: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    currency: str = "ILS"


class ShowCreate(BaseModel):
    title: str = Field(..., min_length=1)
    slug: Optional[str] = None  # Se genera desde el título si no viene
    date_iso: IsoDate
    doors_time: Optional[str] = None
    description: str = Field(..., min_length=1)
    image_media_id: Optional[str] = None
    status: ShowStatus = "available"
    is_standing: Optional[bool] = None
    is_360: Optional[bool] = None
    venue_name: str = Field(..., min_length=1)
    venue_address: str = Field(..., min_length=1)
    ticket_tiers: List[TicketTier] = Field(..., min_length=1)
    tags: List[str] = []
    featured: bool = False
    published: bool = True
    archived: bool = False


class ShowUpdate(BaseModel):
    """Actualización parcial: solo se aplican los campos enviados"""
    title: Optional[str] = Field(None, min_length=1)
    slug: Optional[str] = None
    date_iso: Optional[IsoDate] = None
    doors_time: Optional[str] = None
    description: Optional[str] = Field(None, min_length=1)
    image_media_id: Optional[str] = None
    status: Optional[ShowStatus] = None
    is_standing: Optional[bool] = None
    is_360: Optional[bool] = None
    venue_name: Optional[str] = Field(None, min_length=1)
    venue_address: Optional[str] = Field(None, min_length=1)
    ticket_tiers: Optional[List[TicketTier]] = Field(None, min_length=1)
    tags: Optional[List[str]] = None
    featured: Optional[bool] = None
    published: Optional[bool] = None
    archived: Optional[bool] = None


class ShowResponse(BaseModel):
    id: str
    title: str
    slug: Optional[str] = None
    date_iso: str
    doors_time: Optional[str] = None
    description: str
    image_media_id: Optional[str] = None
    status: str
    is_standing: Optional[bool] = None
    is_360: Optional[bool] = None
    venue_name: str
    venue_address: str
    ticket_tiers: List[TicketTier] = []
    tags: List[str] = []
    featured: bool
    published: bool
    archived: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


class ShowsListResponse(BaseModel):
    items: List[ShowResponse]
    total: int
    page: int
    limit: int
    total_pages: int


def show_response(show) -> ShowResponse:
    return ShowResponse(
        id=str(show.id),
        title=show.title,
        slug=show.slug,
        date_iso=show.date_iso,
        doors_time=show.doors_time,
        description=show.description or "",
        image_media_id=show.image_media_id,
        status=show.status,
        is_standing=show.is_standing,
        is_360=show.is_360,
        venue_name=show.venue_name,
        venue_address=show.venue_address,
        ticket_tiers=[TicketTier(**tier) for tier in (show.ticket_tiers or [])],
        tags=list(show.tags or []),
        featured=show.featured,
        published=show.published,
        archived=show.archived,
        created_at=show.created_at,
        updated_at=show.updated_at,
    )


# ==================== PAGES ====================

class PageUpdate(BaseModel):
    title: str = Field(..., min_length=1)
    content_rich_text: str = Field(..., min_length=1)
    pdf_media_id: Optional[str] = None


class PageResponse(BaseModel):
    key: str
    title: str
    content_rich_text: str
    pdf_media_id: Optional[str] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None


def page_response(page) -> PageResponse:
    return PageResponse(
        key=page.key,
        title=page.title,
        content_rich_text=page.content_rich_text,
        pdf_media_id=page.pdf_media_id,
        updated_at=page.updated_at,
        updated_by=str(page.updated_by) if page.updated_by else None,
    )


# ==================== FAQ ====================

class FAQCreate(BaseModel):
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    category: Optional[str] = None
    order: Optional[int] = None  # Por defecto al final de su categoría
    is_active: bool = True


class FAQUpdate(BaseModel):
    question: Optional[str] = Field(None, min_length=1)
    answer: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    order: Optional[int] = None
    is_active: Optional[bool] = None


class FAQReorderRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class FAQResponse(BaseModel):
    id: str
    question: str
    answer: str
    category: str
    order: int
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


def faq_response(faq) -> FAQResponse:
    return FAQResponse(
        id=str(faq.id),
        question=faq.question,
        answer=faq.answer,
        category=faq.category or "General",
        order=faq.order,
        is_active=faq.is_active,
        created_at=faq.created_at,
        updated_at=faq.updated_at,
    )


# ==================== SITE SETTINGS ====================

class SiteSettingsUpdate(BaseModel):
    """
    Actualización parcial de la configuración del sitio.

    chandelier y footer se mezclan con el valor actual; las listas se reemplazan.
    """
    chandelier: Optional[Dict[str, Any]] = None
    announcements: Optional[List[Dict[str, Any]]] = None
    marquee_items: Optional[List[str]] = None
    featured_sections: Optional[List[Dict[str, Any]]] = None
    nav_links: Optional[List[Dict[str, Any]]] = None
    footer: Optional[Dict[str, Any]] = None


class SiteSettingsResponse(BaseModel):
    chandelier: Dict[str, Any]
    announcements: List[Dict[str, Any]]
    marquee_items: List[str]
    featured_sections: List[Dict[str, Any]]
    nav_links: List[Dict[str, Any]]
    footer: Dict[str, Any]
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None
