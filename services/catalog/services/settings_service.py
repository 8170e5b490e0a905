"""Servicio de configuración del sitio con cache en memoria"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Any, Callable, Dict, Optional
import copy
import time
import logging

from shared.config import settings
from shared.database.models import SiteSettings, User
from services.admin.services.audit_service import audit_service
from services.catalog.models.catalog import SiteSettingsUpdate

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = ("chandelier", "announcements", "marquee_items", "featured_sections", "nav_links", "footer")
MERGED_FIELDS = ("chandelier", "footer")

DEFAULT_SITE_SETTINGS: Dict[str, Any] = {
    "chandelier": {
        "enabled": True,
        "alt_text": "נברשת בארבי",
        "placement": "hero",
        "desktop_size": "large",
        "mobile_size": "compact",
        "aria_hidden": True,
    },
    "announcements": [],
    "marquee_items": [
        "** השעה מציינת את שעת פתיחת הדלתות **",
        "רכישת כרטיסים מתבצעת רק באתר הרשמי",
    ],
    "featured_sections": [
        {"id": "upcoming", "title": "הופעות קרובות", "type": "shows", "enabled": True, "order": 0},
    ],
    "nav_links": [
        {"label": "עמוד הבית", "href": "/", "external": False, "order": 0},
        {"label": "הופעות", "href": "/shows", "external": False, "order": 1},
        {"label": "ארכיון", "href": "/archive", "external": False, "order": 2},
        {"label": "גיפט קארד", "href": "/gift-card", "external": False, "order": 3},
        {"label": "צור קשר", "href": "/contact", "external": False, "order": 4},
    ],
    "footer": {
        "address": "קיבוץ גלויות 52, תל אביב",
        "phone": "03-5188123",
        "email": "info@barby.co.il",
        "social_links": [
            {"platform": "facebook", "url": "https://facebook.com/barbytlv"},
            {"platform": "instagram", "url": "https://instagram.com/barbytlv"},
        ],
        "copyright_text": "© Barby",
    },
}


def default_settings() -> Dict[str, Any]:
    value = copy.deepcopy(DEFAULT_SITE_SETTINGS)
    value["updated_at"] = None
    value["updated_by"] = None
    return value


def _row_to_dict(row: SiteSettings) -> Dict[str, Any]:
    value = {
        field: getattr(row, field) or copy.deepcopy(DEFAULT_SITE_SETTINGS[field])
        for field in SETTINGS_FIELDS
    }
    # announcements vacío es un valor válido
    value["announcements"] = row.announcements or []
    value["updated_at"] = row.updated_at
    value["updated_by"] = str(row.updated_by) if row.updated_by else None
    return value


class SiteSettingsService:
    """
    Configuración global del sitio.

    La instancia guarda un único registro de cache {value, fetched_at}. get()
    lo devuelve mientras no haya vencido el TTL; update() lo invalida antes de
    retornar. Un lector concurrente puede ver el valor viejo o el nuevo.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = settings.SETTINGS_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._cache: Optional[Dict[str, Any]] = None

    def invalidate(self) -> None:
        self._cache = None

    def _cached(self) -> Optional[Dict[str, Any]]:
        if self._cache is None:
            return None
        if self._clock() - self._cache["fetched_at"] >= self.ttl_seconds:
            return None
        return self._cache["value"]

    async def _load_row(self, db: AsyncSession) -> Optional[SiteSettings]:
        result = await db.execute(select(SiteSettings).where(SiteSettings.singleton_key == "default"))
        return result.scalar_one_or_none()

    async def get(self, db: AsyncSession) -> Dict[str, Any]:
        """Configuración actual (defaults si todavía no hay fila)"""
        cached = self._cached()
        if cached is not None:
            return cached

        row = await self._load_row(db)
        value = _row_to_dict(row) if row is not None else default_settings()
        self._cache = {"value": value, "fetched_at": self._clock()}
        return value

    async def update(self, db: AsyncSession, data: SiteSettingsUpdate, actor: User) -> Dict[str, Any]:
        """
        Aplicar una actualización parcial

        chandelier y footer se mezclan con el valor guardado, el resto se reemplaza.
        """
        changes = data.model_dump(exclude_none=True)

        row = await self._load_row(db)
        if row is None:
            row = SiteSettings(singleton_key="default", **copy.deepcopy(DEFAULT_SITE_SETTINGS))
            db.add(row)

        for field, value in changes.items():
            if field in MERGED_FIELDS:
                # Asignar un dict nuevo: JSON no detecta mutaciones in-place
                value = {**(getattr(row, field) or {}), **value}
            setattr(row, field, value)
        row.updated_by = actor.id
        await db.commit()
        self.invalidate()

        await audit_service.record(
            db, actor, "update", "site-settings", None,
            f"Configuración actualizada: {', '.join(sorted(changes)) or 'sin cambios'}"
        )
        logger.info(f"Configuración del sitio actualizada por {actor.email}")
        return await self.get(db)

    async def initialize(self, db: AsyncSession, actor: Optional[User] = None) -> bool:
        """Crear la fila con los defaults si no existe. Retorna True si la creó."""
        if await self._load_row(db) is not None:
            return False
        db.add(SiteSettings(
            singleton_key="default",
            updated_by=actor.id if actor else None,
            **copy.deepcopy(DEFAULT_SITE_SETTINGS),
        ))
        await db.commit()
        self.invalidate()
        return True


site_settings_service = SiteSettingsService()
