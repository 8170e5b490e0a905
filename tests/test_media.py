"""Media: subida sin procesar, listado, servido y borrado"""
import pytest
from sqlalchemy import select

from shared.config import settings
from shared.database.models import AuditLog
from shared.errors import ValidationError, PayloadTooLarge, NotFoundError
from services.media.services.media_service import media_service

from conftest import auth_headers

pytestmark = pytest.mark.anyio

PNG = b"\x89PNG\r\n\x1a\n" + bytes(range(64))
PDF = b"%PDF-1.4\n%barby\n"


async def _media_audit(session_maker):
    async with session_maker() as check:
        result = await check.execute(select(AuditLog).where(AuditLog.entity_type == "media"))
        return list(result.scalars().all())


async def test_upload_keeps_bytes_unchanged(db, session_maker, editor):
    media = await media_service.upload(db, "poster.png", "image/png", PNG, editor, alt=" Poster ")

    assert media.size_bytes == len(PNG)
    assert media.alt == "Poster"
    assert media.created_by == editor.id

    data, content_type = await media_service.get_content(db, str(media.id))
    assert data == PNG
    assert content_type == "image/png"

    entries = await _media_audit(session_maker)
    assert [(entry.action, entry.diff_summary) for entry in entries] == [("create", "Archivo subido: poster.png")]


async def test_upload_rejects_empty_and_unknown_types(db, editor):
    with pytest.raises(ValidationError):
        await media_service.upload(db, "empty.png", "image/png", b"", editor)
    with pytest.raises(ValidationError):
        await media_service.upload(db, "notes.txt", "text/plain", b"hola", editor)
    with pytest.raises(ValidationError):
        await media_service.upload(db, "blob", None, PNG, editor)


async def test_upload_rejects_oversized_file(db, editor, monkeypatch):
    monkeypatch.setattr(settings, "MEDIA_MAX_FILE_SIZE", 16)

    with pytest.raises(PayloadTooLarge):
        await media_service.upload(db, "poster.png", "image/png", PNG, editor)


async def test_list_filters_and_paginates(db, editor):
    await media_service.upload(db, "poster-a.png", "image/png", PNG, editor)
    await media_service.upload(db, "poster-b.png", "image/png", PNG, editor)
    await media_service.upload(db, "terms.pdf", "application/pdf", PDF, editor)

    result = await media_service.list_media(db, limit=2)
    assert result["total"] == 3
    assert result["total_pages"] == 2
    assert len(result["items"]) == 2

    pdfs = await media_service.list_media(db, content_type="pdf")
    assert [media.original_name for media in pdfs["items"]] == ["terms.pdf"]

    posters = await media_service.list_media(db, search="POSTER")
    assert {media.original_name for media in posters["items"]} == {"poster-a.png", "poster-b.png"}


async def test_delete_is_audited(db, session_maker, admin):
    media = await media_service.upload(db, "terms.pdf", "application/pdf", PDF, admin)
    media_id = str(media.id)

    await media_service.delete(db, media_id, admin)

    with pytest.raises(NotFoundError):
        await media_service.get(db, media_id)
    with pytest.raises(NotFoundError):
        await media_service.get_content(db, media_id)
    entries = await _media_audit(session_maker)
    assert sorted(entry.action for entry in entries) == ["create", "delete"]


async def test_unknown_or_malformed_id_is_not_found(db):
    with pytest.raises(NotFoundError):
        await media_service.get(db, "not-a-uuid")
    with pytest.raises(NotFoundError):
        await media_service.get_content(db, "00000000-0000-0000-0000-000000000000")


# ==================== HTTP ====================

async def test_upload_and_serve_routes(client, editor):
    headers = auth_headers(editor)

    created = await client.post(
        "/api/admin/media",
        files={"file": ("poster.png", PNG, "image/png")},
        data={"alt": "Poster"},
        headers=headers,
    )
    assert created.status_code == 201
    body = created.json()
    assert body["content_type"] == "image/png"
    assert body["size_bytes"] == len(PNG)
    assert body["url"] == f"/api/media/{body['id']}"

    served = await client.get(body["url"])
    assert served.status_code == 200
    assert served.content == PNG
    assert served.headers["content-type"] == "image/png"
    assert "immutable" in served.headers["cache-control"]

    listing = await client.get("/api/admin/media", headers=headers)
    assert listing.json()["total"] == 1

    detail = await client.get(f"/api/admin/media/{body['id']}", headers=headers)
    assert detail.json()["alt"] == "Poster"


async def test_upload_route_rejects_disallowed_type(client, editor):
    response = await client.post(
        "/api/admin/media",
        files={"file": ("script.sh", b"#!/bin/sh", "application/x-sh")},
        headers=auth_headers(editor),
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


async def test_media_panel_permissions(client, editor, admin):
    upload = {"file": ("terms.pdf", PDF, "application/pdf")}

    assert (await client.post("/api/admin/media", files=upload)).status_code == 401
    assert (await client.get("/api/admin/media")).status_code == 401

    created = await client.post("/api/admin/media", files=upload, headers=auth_headers(editor))
    media_id = created.json()["id"]

    assert (await client.delete(f"/api/admin/media/{media_id}", headers=auth_headers(editor))).status_code == 403

    deleted = await client.delete(f"/api/admin/media/{media_id}", headers=auth_headers(admin))
    assert deleted.status_code == 200
    assert (await client.get(f"/api/media/{media_id}")).status_code == 404
