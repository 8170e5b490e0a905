"""Cache de configuración del sitio"""
import pytest
from sqlalchemy import select

from shared.database.models import SiteSettings, AuditLog
from services.catalog.models.catalog import SiteSettingsUpdate
from services.catalog.services.settings_service import SiteSettingsService, DEFAULT_SITE_SETTINGS

pytestmark = pytest.mark.anyio


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return SiteSettingsService(ttl_seconds=300, clock=clock)


async def _set_marquee_directly(db, items):
    row = (await db.execute(select(SiteSettings))).scalar_one()
    row.marquee_items = items
    await db.commit()


async def test_defaults_when_no_row(db, service):
    value = await service.get(db)

    assert value["marquee_items"] == DEFAULT_SITE_SETTINGS["marquee_items"]
    assert value["updated_at"] is None


async def test_cached_value_until_ttl_expires(db, service, clock):
    assert await service.initialize(db) is True
    assert await service.initialize(db) is False

    first = await service.get(db)
    await _set_marquee_directly(db, ["cambio directo"])

    assert (await service.get(db))["marquee_items"] == first["marquee_items"]
    clock.now += 299
    assert (await service.get(db))["marquee_items"] == first["marquee_items"]
    clock.now += 1
    assert (await service.get(db))["marquee_items"] == ["cambio directo"]


async def test_update_invalidates_synchronously(db, session_maker, service, admin):
    await service.initialize(db)
    await service.get(db)

    value = await service.update(
        db,
        SiteSettingsUpdate(marquee_items=["nuevo"], footer={"phone": "03-0000000"}),
        admin,
    )

    assert value["marquee_items"] == ["nuevo"]
    # footer se mezcla con el valor guardado
    assert value["footer"]["phone"] == "03-0000000"
    assert value["footer"]["address"] == DEFAULT_SITE_SETTINGS["footer"]["address"]
    assert value["updated_by"] == str(admin.id)

    # Sin avanzar el reloj: la lectura siguiente ya ve el valor nuevo
    assert (await service.get(db))["marquee_items"] == ["nuevo"]

    async with session_maker() as check:
        entry = (await check.execute(select(AuditLog))).scalar_one()
    assert entry.entity_type == "site-settings"
    assert entry.action == "update"


async def test_update_without_row_creates_it(db, service, admin):
    value = await service.update(db, SiteSettingsUpdate(announcements=[{"text": "Sold out"}]), admin)

    assert value["announcements"] == [{"text": "Sold out"}]
    assert value["nav_links"] == DEFAULT_SITE_SETTINGS["nav_links"]
