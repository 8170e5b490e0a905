"""Rutas de administración (panel de contenidos y usuarios)"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from shared.database.session import get_db
from shared.database.models import User
from shared.auth.dependencies import get_current_admin, get_current_staff
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.admin.models.admin import (
    CreateUserRequest,
    UpdateUserRequest,
    UsersListResponse,
    DeleteResponse,
    AuditLogsListResponse,
    audit_log_response,
)
from services.admin.services.audit_service import audit_service
from services.admin.services.user_management_service import user_management_service
from services.auth.models.auth import UserResponse, user_response
from services.auth.services.auth_service import auth_service
from services.catalog.models.catalog import (
    ShowCreate,
    ShowUpdate,
    ShowResponse,
    ShowsListResponse,
    PageUpdate,
    PageResponse,
    FAQCreate,
    FAQUpdate,
    FAQReorderRequest,
    FAQResponse,
    SiteSettingsUpdate,
    SiteSettingsResponse,
    show_response,
    page_response,
    faq_response,
)
from services.catalog.services.show_service import show_service
from services.catalog.services.page_service import page_service
from services.catalog.services.faq_service import faq_service
from services.catalog.services.settings_service import site_settings_service


router = APIRouter()


# ==================== SHOWS ====================

@router.get("/shows", response_model=ShowsListResponse)
async def list_shows(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    featured: Optional[bool] = Query(None),
    archived: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """
    Listar funciones, incluidas las no publicadas

    Requiere admin o editor
    """
    result = await show_service.list_shows(
        db,
        page=page,
        limit=limit,
        search=search,
        status=status,
        featured=featured,
        archived=archived,
        include_unpublished=True,
    )
    return ShowsListResponse(
        items=[show_response(show) for show in result["items"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        total_pages=result["total_pages"],
    )


@router.get("/shows/{show_id}", response_model=ShowResponse)
async def get_show(
    show_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    show = await show_service.get_show(db, show_id, include_unpublished=True)
    return show_response(show)


@router.post("/shows", response_model=ShowResponse, status_code=status.HTTP_201_CREATED)
async def create_show(
    body: ShowCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """Crear función. Requiere admin o editor"""
    show = await show_service.create_show(db, body, current_user)
    return show_response(show)


@router.put("/shows/{show_id}", response_model=ShowResponse)
async def update_show(
    show_id: str,
    body: ShowUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """Actualizar función (parcial). Requiere admin o editor"""
    show = await show_service.update_show(db, show_id, body, current_user)
    return show_response(show)


@router.delete("/shows/{show_id}", response_model=DeleteResponse)
async def delete_show(
    show_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """Eliminar función. Requiere admin"""
    await show_service.delete_show(db, show_id, current_user)
    return DeleteResponse(message="Función eliminada", id=show_id)


# ==================== PAGES ====================

@router.get("/pages", response_model=List[PageResponse])
async def list_pages(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    pages = await page_service.list_pages(db)
    return [page_response(page) for page in pages]


@router.get("/pages/{key}", response_model=PageResponse)
async def get_page(
    key: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    page = await page_service.get_page(db, key)
    return page_response(page)


@router.put("/pages/{key}", response_model=PageResponse)
async def update_page(
    key: str,
    body: PageUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """Crear o reemplazar una página (about, terms, accessibility, privacy, contact, mailing-list)"""
    page = await page_service.update_page(db, key, body, current_user)
    return page_response(page)


# ==================== SITE SETTINGS ====================

@router.get("/site-settings", response_model=SiteSettingsResponse)
async def get_site_settings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    return SiteSettingsResponse(**await site_settings_service.get(db))


@router.put("/site-settings", response_model=SiteSettingsResponse)
async def update_site_settings(
    body: SiteSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """
    Actualizar configuración del sitio (parcial)

    Invalida el cache: la respuesta y las lecturas siguientes ya ven el valor nuevo.
    """
    value = await site_settings_service.update(db, body, current_user)
    return SiteSettingsResponse(**value)


# ==================== FAQ ====================

@router.get("/faq", response_model=List[FAQResponse])
async def list_faq(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """Todas las preguntas, incluidas las inactivas"""
    faqs = await faq_service.list_all(db)
    return [faq_response(faq) for faq in faqs]


@router.get("/faq/categories", response_model=List[str])
async def list_faq_categories(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    return await faq_service.categories(db)


@router.post("/faq/reorder", response_model=List[FAQResponse])
async def reorder_faq(
    body: FAQReorderRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """Reordenar: cada pregunta toma como order su posición en la lista"""
    faqs = await faq_service.reorder(db, body.ids, current_user)
    return [faq_response(faq) for faq in faqs]


@router.get("/faq/{faq_id}", response_model=FAQResponse)
async def get_faq(
    faq_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    faq = await faq_service.get(db, faq_id)
    return faq_response(faq)


@router.post("/faq", response_model=FAQResponse, status_code=status.HTTP_201_CREATED)
async def create_faq(
    body: FAQCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    faq = await faq_service.create(db, body, current_user)
    return faq_response(faq)


@router.put("/faq/{faq_id}", response_model=FAQResponse)
async def update_faq(
    faq_id: str,
    body: FAQUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    faq = await faq_service.update(db, faq_id, body, current_user)
    return faq_response(faq)


@router.delete("/faq/{faq_id}", response_model=DeleteResponse)
async def delete_faq(
    faq_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    await faq_service.delete(db, faq_id, current_user)
    return DeleteResponse(message="Pregunta eliminada", id=faq_id)


# ==================== USERS ====================

@router.get("/users", response_model=UsersListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """
    Listar usuarios del panel

    Requiere autenticación de admin
    """
    result = await user_management_service.list_users(db, page=page, limit=limit)
    return UsersListResponse(
        items=[user_response(user) for user in result["items"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        total_pages=result["total_pages"],
    )


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    user = await user_management_service.get_user(db, user_id)
    return user_response(user)


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["admin"])
async def create_user(
    request: Request,  # Necesario para rate limiter
    body: CreateUserRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """
    Crear usuario del panel (admin o editor)

    Requiere autenticación de admin. 409 si el email ya existe.
    """
    user = await auth_service.create_user(
        db,
        email=body.email,
        password=body.password,
        role=body.role,
        name=body.name,
        actor=current_user,
    )
    return user_response(user)


@router.put("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """Actualizar nombre, email, contraseña, rol o estado. Requiere admin"""
    user = await user_management_service.update_user(db, user_id, body, current_user)
    return user_response(user)


@router.delete("/users/{user_id}", response_model=DeleteResponse)
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """
    Eliminar usuario. Requiere admin

    No permite eliminarse a sí mismo ni eliminar usuarios con órdenes.
    """
    await user_management_service.delete_user(db, user_id, current_user)
    return DeleteResponse(message="Usuario eliminado", id=user_id)


# ==================== AUDIT ====================

@router.get("/audit", response_model=AuditLogsListResponse)
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    entity_type: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """Audit log, más recientes primero. Requiere admin o editor"""
    result = await audit_service.get_audit_logs(
        db, page=page, limit=limit, entity_type=entity_type, action=action, user_id=user_id
    )
    return AuditLogsListResponse(
        items=[audit_log_response(entry) for entry in result["items"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        total_pages=result["total_pages"],
    )
