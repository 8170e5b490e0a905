"""Autenticación: login, refresh, logout, cambio de contraseña y tokens"""
from datetime import timedelta

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select, func

from shared.auth.jwt_handler import create_access_token, create_refresh_token, decode_token, REFRESH_TOKEN_TYPE
from shared.database.models import RefreshToken, AuditLog, utcnow
from shared.auth import login_attempts as login_attempts_module
from shared.auth.login_attempts import LoginAttemptTracker
from shared.errors import Unauthorized, ConflictError, ValidationError, TooManyRequests
from services.auth.services.auth_service import auth_service

from conftest import auth_headers

pytestmark = pytest.mark.anyio


async def _count(db, model) -> int:
    return (await db.execute(select(func.count(model.id)))).scalar()


async def test_refresh_token_is_not_an_access_token(editor):
    with pytest.raises(Unauthorized):
        decode_token(create_refresh_token(editor))
    with pytest.raises(Unauthorized):
        decode_token(create_access_token(editor), REFRESH_TOKEN_TYPE)


async def test_expired_access_token(editor):
    token = create_access_token(editor, expires_delta=timedelta(seconds=-1))
    with pytest.raises(Unauthorized) as exc_info:
        decode_token(token)
    assert exc_info.value.message == "Token expirado"


async def test_login_stores_refresh_token_and_audits(db, session_maker, editor):
    result = await auth_service.login(db, "  DANA@barby.co.il ", "password123")

    assert decode_token(result["access_token"])["sub"] == str(editor.id)
    assert await _count(db, RefreshToken) == 1
    async with session_maker() as check:
        entry = (await check.execute(select(AuditLog))).scalar_one()
    assert entry.action == "login"


async def test_login_failures_share_one_message(db, editor, make_user):
    await make_user("off@barby.co.il", is_active=False)

    messages = set()
    for email, password in [
        ("dana@barby.co.il", "wrong-password"),
        ("nobody@barby.co.il", "password123"),
        ("off@barby.co.il", "password123"),
    ]:
        with pytest.raises(Unauthorized) as exc_info:
            await auth_service.login(db, email, password)
        messages.add(exc_info.value.message)
    assert len(messages) == 1


async def test_two_logins_get_distinct_refresh_tokens(db, editor):
    first = await auth_service.login(db, editor.email, "password123")
    second = await auth_service.login(db, editor.email, "password123")

    assert first["refresh_token"] != second["refresh_token"]


async def test_refresh_and_logout(db, editor):
    tokens = await auth_service.login(db, editor.email, "password123")

    access = await auth_service.refresh(db, tokens["refresh_token"])
    assert decode_token(access)["sub"] == str(editor.id)

    await auth_service.logout(db, tokens["refresh_token"])
    assert await _count(db, RefreshToken) == 0
    with pytest.raises(Unauthorized):
        await auth_service.refresh(db, tokens["refresh_token"])

    # Un token desconocido no es un error
    await auth_service.logout(db, tokens["refresh_token"])


async def test_expired_stored_refresh_token_is_deleted(db, editor):
    tokens = await auth_service.login(db, editor.email, "password123")
    stored = (await db.execute(select(RefreshToken))).scalar_one()
    stored.expires_at = utcnow() - timedelta(minutes=1)
    await db.commit()

    with pytest.raises(Unauthorized):
        await auth_service.refresh(db, tokens["refresh_token"])
    assert await _count(db, RefreshToken) == 0


async def test_purge_expired_refresh_tokens(db, editor):
    await auth_service.login(db, editor.email, "password123")
    await auth_service.login(db, editor.email, "password123")
    stored = (await db.execute(select(RefreshToken))).scalars().first()
    stored.expires_at = utcnow() - timedelta(days=1)
    await db.commit()

    assert await auth_service.purge_expired_refresh_tokens(db) == 1
    assert await _count(db, RefreshToken) == 1


async def test_change_password_revokes_sessions(db, editor):
    await auth_service.login(db, editor.email, "password123")

    with pytest.raises(Unauthorized):
        await auth_service.change_password(db, editor, "wrong", "newpassword1")
    with pytest.raises(ValidationError):
        await auth_service.change_password(db, editor, "password123", "short")

    await auth_service.change_password(db, editor, "password123", "newpassword1")

    assert await _count(db, RefreshToken) == 0
    await auth_service.login(db, editor.email, "newpassword1")


async def test_create_user_duplicate_email(db, admin):
    user = await auth_service.create_user(db, "New@Barby.co.il", "password123", "editor", "New", actor=admin)
    assert user.email == "new@barby.co.il"

    with pytest.raises(ConflictError):
        await auth_service.create_user(db, "new@barby.co.il", "password123", "editor", "Dup", actor=admin)
    with pytest.raises(ValidationError):
        await auth_service.create_user(db, "x@barby.co.il", "password123", "superuser", "X", actor=admin)


# ==================== BLOQUEO POR FUERZA BRUTA ====================

class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def test_tracker_locks_after_max_failures_and_expires():
    clock = FakeClock()
    tracker = LoginAttemptTracker(max_attempts=5, lockout_seconds=900, clock=clock)

    for _ in range(4):
        await tracker.record_failure("10.0.0.1")
    await tracker.check("10.0.0.1")

    assert await tracker.record_failure("10.0.0.1") == 5
    with pytest.raises(TooManyRequests) as exc_info:
        await tracker.check("10.0.0.1")
    assert exc_info.value.retry_after == 900
    assert "15 minutos" in exc_info.value.message

    # Otra IP no se ve afectada
    await tracker.check("10.0.0.2")

    clock.now += 899
    with pytest.raises(TooManyRequests):
        await tracker.check("10.0.0.1")
    clock.now += 1
    await tracker.check("10.0.0.1")
    assert await tracker.record_failure("10.0.0.1") == 1


async def test_tracker_falls_back_to_memory_when_redis_is_down(monkeypatch):
    class _DownRedis:
        def pipeline(self, transaction=True):
            raise RedisConnectionError("Connection refused")

        async def delete(self, key):
            raise RedisConnectionError("Connection refused")

    async def _get_redis():
        return _DownRedis()

    monkeypatch.setattr(login_attempts_module, "get_redis", _get_redis)
    tracker = LoginAttemptTracker(max_attempts=2, lockout_seconds=60, storage_uri="redis://cache:6379/0")

    assert tracker.use_redis
    assert await tracker.record_failure("10.0.0.1") == 1
    assert await tracker.record_failure("10.0.0.1") == 2
    with pytest.raises(TooManyRequests):
        await tracker.check("10.0.0.1")

    await tracker.clear("10.0.0.1")
    await tracker.check("10.0.0.1")


async def test_login_locks_ip_after_five_failures(db, editor):
    for _ in range(5):
        with pytest.raises(Unauthorized):
            await auth_service.login(db, editor.email, "wrong-password", client_ip="10.0.0.9")

    # Bloqueada aun con la contraseña correcta
    with pytest.raises(TooManyRequests):
        await auth_service.login(db, editor.email, "password123", client_ip="10.0.0.9")
    assert await _count(db, RefreshToken) == 0

    await auth_service.login(db, editor.email, "password123", client_ip="10.0.0.10")


async def test_successful_login_resets_failure_count(db, editor):
    for _ in range(4):
        with pytest.raises(Unauthorized):
            await auth_service.login(db, editor.email, "wrong-password", client_ip="10.0.0.9")

    await auth_service.login(db, editor.email, "password123", client_ip="10.0.0.9")

    for _ in range(4):
        with pytest.raises(Unauthorized):
            await auth_service.login(db, editor.email, "wrong-password", client_ip="10.0.0.9")
    await auth_service.login(db, editor.email, "password123", client_ip="10.0.0.9")


# ==================== HTTP ====================

async def test_login_route(client, editor):
    response = await client.post("/api/auth/login", json={"email": editor.email, "password": "password123"})

    assert response.status_code == 200
    body = response.json()
    assert body["user"]["email"] == editor.email
    assert "password_hash" not in body["user"]

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["role"] == "editor"


async def test_login_route_wrong_password(client, editor):
    response = await client.post("/api/auth/login", json={"email": editor.email, "password": "nope-nope"})

    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Email o contraseña incorrectos"}


async def test_me_requires_token(client):
    response = await client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.json()["success"] is False


async def test_inactive_user_token_is_rejected(client, db, editor):
    headers = auth_headers(editor)
    editor.is_active = False
    await db.commit()

    response = await client.get("/api/auth/me", headers=headers)
    assert response.status_code == 401


async def test_login_route_lockout(client, editor):
    headers = {"X-Forwarded-For": "203.0.113.7"}
    for _ in range(5):
        response = await client.post(
            "/api/auth/login", json={"email": editor.email, "password": "nope-nope"}, headers=headers
        )
        assert response.status_code == 401

    locked = await client.post(
        "/api/auth/login", json={"email": editor.email, "password": "password123"}, headers=headers
    )
    assert locked.status_code == 429
    assert locked.json()["success"] is False
    assert int(locked.headers["Retry-After"]) > 0

    other_ip = await client.post(
        "/api/auth/login",
        json={"email": editor.email, "password": "password123"},
        headers={"X-Forwarded-For": "203.0.113.8"},
    )
    assert other_ip.status_code == 200
