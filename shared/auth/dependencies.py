"""Dependencies de autenticación y autorización para FastAPI"""
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID

from shared.auth.jwt_handler import decode_token, ACCESS_TOKEN_TYPE
from shared.database.models import User
from shared.database.session import get_db
from shared.errors import Unauthorized, Forbidden


security = HTTPBearer(auto_error=False)


async def authenticate(db: AsyncSession, token: str) -> User:
    '''
    Verificar token de acceso y resolver el usuario vivo.

    Falla con Unauthorized si el token es inválido/expirado o si el usuario
    ya no existe o está inactivo.
    '''
    payload = decode_token(token, ACCESS_TOKEN_TYPE)

    try:
        user_id = UUID(payload['sub'])
    except ValueError:
        raise Unauthorized('Token inválido: user_id mal formado')

    user = await db.get(User, user_id)
    if user is None:
        raise Unauthorized('Usuario no encontrado')
    if not user.is_active:
        raise Unauthorized('Usuario inactivo')
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    '''Obtener usuario actual desde token JWT (Bearer)'''
    if credentials is None or not credentials.credentials:
        raise Unauthorized('Falta el token de autenticación')
    return await authenticate(db, credentials.credentials)


def authorize(*required_roles: str):
    '''
    Crear dependency que exige que el rol del usuario esté en required_roles.

    Los roles no tienen jerarquía: una ruta abierta a editores debe listar
    explícitamente "admin" y "editor".
    '''
    allowed = frozenset(required_roles)

    async def _check_role(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise Forbidden('No tienes permisos para esta acción')
        return current_user

    return _check_role


get_current_admin = authorize("admin")
get_current_staff = authorize("admin", "editor")
