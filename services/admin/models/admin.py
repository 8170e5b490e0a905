"""Modelos Pydantic para administración"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime

from services.auth.models.auth import UserResponse


# ==================== USERS ====================

class CreateUserRequest(BaseModel):
    """Request para crear usuario del panel"""
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: str = "editor"  # admin, editor
    name: str = ""


class UpdateUserRequest(BaseModel):
    """Solo se aplican los campos enviados"""
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=8)
    role: Optional[str] = None
    is_active: Optional[bool] = None


class UsersListResponse(BaseModel):
    items: List[UserResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class DeleteResponse(BaseModel):
    success: bool = True
    message: str
    id: str


# ==================== AUDIT ====================

class AuditLogResponse(BaseModel):
    id: str
    actor_user_id: str
    actor_email: str
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    diff_summary: Optional[str] = None
    created_at: datetime


class AuditLogsListResponse(BaseModel):
    items: List[AuditLogResponse]
    total: int
    page: int
    limit: int
    total_pages: int


def audit_log_response(entry) -> AuditLogResponse:
    return AuditLogResponse(
        id=str(entry.id),
        actor_user_id=str(entry.actor_user_id),
        actor_email=entry.actor_email,
        action=entry.action,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        diff_summary=entry.diff_summary,
        created_at=entry.created_at,
    )
