#!/usr/bin/env python3
"""Script para inicializar la base: tablas, usuario admin y configuración del sitio"""
import asyncio
import os
import sys

from dotenv import load_dotenv

# Agregar directorio raíz al path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

load_dotenv()

from sqlalchemy import select

from shared.config import settings
from shared.database import connection
from shared.database.connection import create_tables, close_db
from shared.database.models import User
from services.auth.services.auth_service import auth_service, normalize_email
from services.catalog.services.settings_service import site_settings_service


async def seed():
    print("🔧 Creando tablas...")
    await create_tables()

    async with connection.async_session_maker() as db:
        email = normalize_email(settings.ADMIN_EMAIL)
        result = await db.execute(select(User).where(User.email == email))
        admin = result.scalar_one_or_none()

        if admin is None:
            admin = await auth_service.create_user(
                db,
                email=email,
                password=settings.ADMIN_PASSWORD,
                role="admin",
                name=settings.ADMIN_NAME,
            )
            print(f"✅ Usuario admin creado: {admin.email}")
        else:
            print(f"ℹ️  Usuario admin ya existe: {admin.email}")

        if await site_settings_service.initialize(db, actor=admin):
            print("✅ Configuración del sitio inicializada")
        else:
            print("ℹ️  Configuración del sitio ya existe")

    for warning in settings.security_warnings():
        print(f"⚠️  {warning}")

    await close_db()


if __name__ == "__main__":
    asyncio.run(seed())
