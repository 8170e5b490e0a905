"""Rutas HTTP: órdenes, gift cards, catálogo público y permisos del panel"""
import pytest
from sqlalchemy import select

from shared.database.models import AuditLog, User

from conftest import auth_headers

pytestmark = pytest.mark.anyio


def _order_body(show, **kwargs):
    body = {
        "show_id": str(show.id),
        "tickets": [{"tier_label": "General", "tier_price": 120, "quantity": 2}],
    }
    body.update(kwargs)
    return body


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.headers["X-Content-Type-Options"] == "nosniff"


async def test_unknown_route_uses_error_envelope(client):
    response = await client.get("/api/nope")

    assert response.status_code == 404
    assert response.json()["success"] is False


# ==================== ORDERS ====================

async def test_create_and_read_order(client, editor, show):
    headers = auth_headers(editor)

    response = await client.post("/api/orders", json=_order_body(show), headers=headers)
    assert response.status_code == 201
    order = response.json()
    assert order["total_amount"] == 240
    assert order["tickets"][0]["subtotal"] == 240
    assert order["status"] == "confirmed"

    by_id = await client.get(f"/api/orders/{order['id']}", headers=headers)
    assert by_id.status_code == 200
    by_number = await client.get(f"/api/orders/by-number/{order['order_number']}", headers=headers)
    assert by_number.json()["id"] == order["id"]

    mine = await client.get("/api/orders/my", headers=headers)
    assert [o["id"] for o in mine.json()] == [order["id"]]


async def test_create_order_requires_auth(client, show):
    response = await client.post("/api/orders", json=_order_body(show))

    assert response.status_code == 401


async def test_create_order_with_empty_tickets(client, editor, show):
    response = await client.post("/api/orders", json=_order_body(show, tickets=[]), headers=auth_headers(editor))

    assert response.status_code == 400
    assert response.json()["success"] is False


async def test_create_order_with_malformed_body(client, editor, show):
    body = _order_body(show, tickets=[{"tier_label": "General", "tier_price": "abc", "quantity": 1}])

    response = await client.post("/api/orders", json=body, headers=auth_headers(editor))

    assert response.status_code == 400
    assert response.json()["details"]


@pytest.mark.parametrize("line", [
    {"tier_label": "General", "tier_price": "120", "quantity": 1},
    {"tier_label": "General", "tier_price": 120, "quantity": True},
    {"tier_label": "General", "tier_price": 120, "quantity": "2"},
    {"tier_label": "General", "tier_price": True, "quantity": 1},
])
async def test_create_order_rejects_non_numeric_lines(client, editor, show, line):
    response = await client.post(
        "/api/orders", json=_order_body(show, tickets=[line]), headers=auth_headers(editor)
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


async def test_create_order_for_unknown_show(client, editor):
    body = {
        "show_id": "00000000-0000-0000-0000-000000000000",
        "tickets": [{"tier_label": "General", "tier_price": 120, "quantity": 1}],
    }

    response = await client.post("/api/orders", json=body, headers=auth_headers(editor))

    assert response.status_code == 404


async def test_create_order_with_unknown_gift_card(client, editor, show):
    body = _order_body(show, gift_card_code="AAAA-BBBB-CCCC-DDDD")

    response = await client.post("/api/orders", json=body, headers=auth_headers(editor))

    assert response.status_code == 402


async def test_order_of_another_user_is_forbidden(client, editor, other_editor, show):
    created = await client.post("/api/orders", json=_order_body(show), headers=auth_headers(editor))
    order_id = created.json()["id"]
    stranger = auth_headers(other_editor)

    assert (await client.get(f"/api/orders/{order_id}", headers=stranger)).status_code == 403
    assert (await client.post(f"/api/orders/{order_id}/cancel", headers=stranger)).status_code == 403
    assert (await client.get("/api/orders/00000000-0000-0000-0000-000000000000", headers=stranger)).status_code == 404


async def test_cancel_route(client, session_maker, editor, show):
    headers = auth_headers(editor)
    created = await client.post("/api/orders", json=_order_body(show), headers=headers)
    order_id = created.json()["id"]

    first = await client.post(f"/api/orders/{order_id}/cancel", headers=headers)
    second = await client.post(f"/api/orders/{order_id}/cancel", headers=headers)

    assert first.json()["status"] == "cancelled"
    assert second.status_code == 200
    async with session_maker() as check:
        entries = (await check.execute(select(AuditLog).where(AuditLog.entity_type == "order"))).scalars().all()
    assert len(entries) == 1


async def test_admin_order_routes_require_admin(client, editor, admin, show):
    await client.post("/api/orders", json=_order_body(show), headers=auth_headers(editor))

    assert (await client.get("/api/orders/admin/all", headers=auth_headers(editor))).status_code == 403

    response = await client.get("/api/orders/admin/all", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["total"] == 1

    stats = await client.get("/api/orders/admin/stats", headers=auth_headers(admin))
    assert stats.json()["confirmed_count"] == 1

    per_show = await client.get(f"/api/orders/admin/show/{show.id}", headers=auth_headers(admin))
    assert per_show.status_code == 200


# ==================== GIFT CARDS ====================

async def test_gift_card_purchase_validate_and_use(client, editor):
    headers = auth_headers(editor)

    created = await client.post("/api/giftcards", json={"amount": 200, "is_for_self": True}, headers=headers)
    assert created.status_code == 201
    code = created.json()["code"]

    valid = await client.post("/api/giftcards/validate", json={"code": code}, headers=headers)
    assert valid.status_code == 200
    assert valid.json()["balance"] == 200

    used = await client.post("/api/giftcards/use", json={"code": code, "amount": 200}, headers=headers)
    assert used.json()["status"] == "redeemed"

    invalid = await client.post("/api/giftcards/validate", json={"code": code}, headers=headers)
    assert invalid.status_code == 400
    assert invalid.json()["data"] == {"balance": 0, "status": "redeemed"}

    over = await client.post("/api/giftcards/use", json={"code": code, "amount": 10}, headers=headers)
    assert over.status_code == 402


async def test_gift_card_amount_out_of_range(client, editor):
    response = await client.post(
        "/api/giftcards", json={"amount": 50, "is_for_self": True}, headers=auth_headers(editor)
    )

    assert response.status_code == 400


async def test_gift_card_visibility(client, editor, other_editor):
    created = await client.post(
        "/api/giftcards", json={"amount": 100, "is_for_self": True}, headers=auth_headers(editor)
    )
    code = created.json()["code"]

    assert (await client.get(f"/api/giftcards/{code}", headers=auth_headers(editor))).status_code == 200
    assert (await client.get(f"/api/giftcards/{code}", headers=auth_headers(other_editor))).status_code == 403
    assert (await client.get("/api/giftcards/admin/stats", headers=auth_headers(editor))).status_code == 403


# ==================== PUBLIC CATALOG ====================

async def test_public_catalog_hides_unpublished_shows(client, db, show):
    show.published = False
    await db.commit()

    listing = await client.get("/api/public/shows")
    assert listing.status_code == 200
    assert listing.json()["total"] == 0

    assert (await client.get(f"/api/public/shows/{show.id}")).status_code == 404
    assert (await client.get("/api/public/shows/slug/hadag-nahash")).status_code == 404


async def test_public_catalog_filters_by_tag(client, show):
    rock = await client.get("/api/public/shows", params={"tags": "rock,indie"})
    jazz = await client.get("/api/public/shows", params={"tags": "jazz"})

    assert [s["slug"] for s in rock.json()["items"]] == ["hadag-nahash"]
    assert jazz.json()["total"] == 0


async def test_public_pages_and_settings(client):
    assert (await client.get("/api/public/pages/about")).status_code == 404
    assert (await client.get("/api/public/pages/unknown")).status_code == 404

    settings_response = await client.get("/api/public/site-settings")
    assert settings_response.status_code == 200
    assert settings_response.json()["nav_links"]


# ==================== ADMIN PANEL ====================

async def test_anonymous_cannot_reach_admin(client):
    response = await client.get("/api/admin/shows")

    assert response.status_code == 401
    assert response.json()["success"] is False


async def test_editor_manages_content_but_not_users(client, editor, show):
    headers = auth_headers(editor)

    created = await client.post("/api/admin/shows", json={
        "title": "Mashina Live",
        "date_iso": "2099-06-01T21:00:00",
        "description": "Reunion",
        "venue_name": "Barby",
        "venue_address": "Kibbutz Galuyot 52",
        "ticket_tiers": [{"label": "General", "price": 150}],
    }, headers=headers)
    assert created.status_code == 201
    assert created.json()["slug"] == "mashina-live"

    page = await client.put(
        "/api/admin/pages/about", json={"title": "About", "content_rich_text": "<p>Barby</p>"}, headers=headers
    )
    assert page.status_code == 200
    assert (await client.get("/api/public/pages/about")).json()["title"] == "About"

    assert (await client.delete(f"/api/admin/shows/{show.id}", headers=headers)).status_code == 403
    assert (await client.get("/api/admin/users", headers=headers)).status_code == 403

    audit = await client.get("/api/admin/audit", params={"entity_type": "show"}, headers=headers)
    assert audit.json()["total"] == 1


async def test_duplicate_slug_is_conflict(client, editor, show):
    response = await client.post("/api/admin/shows", json={
        "title": "Hadag Nahash",
        "date_iso": "2099-07-01T21:00:00",
        "description": "Otra fecha",
        "venue_name": "Barby",
        "venue_address": "Kibbutz Galuyot 52",
        "ticket_tiers": [{"label": "General", "price": 120}],
    }, headers=auth_headers(editor))

    assert response.status_code == 409


async def test_site_settings_update_is_visible_immediately(client, editor):
    before = await client.get("/api/public/site-settings")
    assert before.json()["marquee_items"] != ["Sold out"]

    updated = await client.put(
        "/api/admin/site-settings", json={"marquee_items": ["Sold out"]}, headers=auth_headers(editor)
    )
    assert updated.status_code == 200

    after = await client.get("/api/public/site-settings")
    assert after.json()["marquee_items"] == ["Sold out"]


async def test_faq_crud_and_reorder(client, editor):
    headers = auth_headers(editor)
    first = (await client.post("/api/admin/faq", json={"question": "Parking?", "answer": "No"}, headers=headers)).json()
    second = (await client.post("/api/admin/faq", json={"question": "Food?", "answer": "Yes"}, headers=headers)).json()
    assert (first["order"], second["order"]) == (0, 1)
    assert first["category"] == "General"

    reordered = await client.post("/api/admin/faq/reorder", json={"ids": [second["id"], first["id"]]}, headers=headers)
    assert [faq["id"] for faq in reordered.json()] == [second["id"], first["id"]]

    await client.put(f"/api/admin/faq/{first['id']}", json={"is_active": False}, headers=headers)
    public = await client.get("/api/public/faq")
    assert [faq["id"] for faq in public.json()] == [second["id"]]


async def test_admin_user_management(client, session_maker, admin):
    headers = auth_headers(admin)

    created = await client.post("/api/admin/users", json={
        "email": "Editor@Barby.co.il", "password": "password123", "role": "editor", "name": "Ed",
    }, headers=headers)
    assert created.status_code == 201
    user_id = created.json()["id"]
    assert created.json()["email"] == "editor@barby.co.il"

    duplicate = await client.post("/api/admin/users", json={
        "email": "editor@barby.co.il", "password": "password123", "role": "editor",
    }, headers=headers)
    assert duplicate.status_code == 409

    updated = await client.put(f"/api/admin/users/{user_id}", json={"role": "admin"}, headers=headers)
    assert updated.json()["role"] == "admin"

    self_delete = await client.delete(f"/api/admin/users/{admin.id}", headers=headers)
    assert self_delete.status_code == 400

    deleted = await client.delete(f"/api/admin/users/{user_id}", headers=headers)
    assert deleted.status_code == 200
    async with session_maker() as check:
        assert (await check.execute(select(User).where(User.email == "editor@barby.co.il"))).scalar_one_or_none() is None


async def test_user_with_orders_cannot_be_deleted(client, admin, editor, show):
    await client.post("/api/orders", json=_order_body(show), headers=auth_headers(editor))

    response = await client.delete(f"/api/admin/users/{editor.id}", headers=auth_headers(admin))

    assert response.status_code == 409
