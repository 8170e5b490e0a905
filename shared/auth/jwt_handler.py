"""Manejo de JWT tokens"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
from jose import ExpiredSignatureError, JWTError, jwt
import uuid

from shared.config import settings
from shared.errors import Unauthorized


ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def _secret_for(token_type: str) -> str:
    if token_type == REFRESH_TOKEN_TYPE:
        return settings.JWT_REFRESH_SECRET
    return settings.JWT_SECRET


def create_access_token(user, expires_delta: Optional[timedelta] = None) -> str:
    '''Crear token de acceso JWT para un usuario'''
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {
        'sub': str(user.id),
        'email': user.email,
        'role': user.role,
        'exp': expire,
        'type': ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(user, expires_delta: Optional[timedelta] = None) -> str:
    '''Crear token de refresh JWT (jti único para que cada login genere un token distinto)'''
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
    )
    to_encode = {
        'sub': str(user.id),
        'jti': uuid.uuid4().hex,
        'exp': expire,
        'type': REFRESH_TOKEN_TYPE,
    }
    return jwt.encode(to_encode, settings.JWT_REFRESH_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, token_type: str = ACCESS_TOKEN_TYPE) -> Dict:
    '''
    Decodificar y validar token JWT (firma, expiración y tipo).

    Raises:
        Unauthorized: si el token está expirado, mal formado o es de otro tipo
    '''
    try:
        payload = jwt.decode(token, _secret_for(token_type), algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise Unauthorized('Token expirado')
    except JWTError:
        raise Unauthorized('Token inválido')

    if payload.get('type') != token_type:
        raise Unauthorized('Token inválido')
    if not payload.get('sub'):
        raise Unauthorized('Token inválido: falta user_id')
    return payload
