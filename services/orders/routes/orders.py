"""Rutas de órdenes"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from shared.database.session import get_db
from shared.database.models import User
from shared.auth.dependencies import get_current_user, get_current_admin
from shared.config import settings
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.orders.models.order import (
    CreateOrderRequest,
    OrderResponse,
    OrdersListResponse,
    OrderStatsResponse,
    ShowOrdersResponse,
    order_response,
)
from services.orders.services.order_service import order_service


router = APIRouter()


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["order"])
async def create_order(
    request: Request,  # Necesario para rate limiter
    order_request: CreateOrderRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Crear una orden para una función

    El precio de cada línea se toma del request. Si se indica gift card,
    se descuenta su saldo en la misma transacción.

    Errores: 400 entradas inválidas, 402 gift card, 404 función inexistente
    """
    order = await order_service.create(db, current_user, order_request)
    return order_response(order)


@router.get("/my", response_model=List[OrderResponse])
async def get_my_orders(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Órdenes del usuario actual (más recientes primero)"""
    orders = await order_service.get_by_owner(db, current_user)
    return [order_response(order) for order in orders]


# ==================== ADMIN ====================
# Declaradas antes de /{order_id} para que "admin" no se tome como id

@router.get("/admin/all", response_model=OrdersListResponse)
async def list_all_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, description="pending, confirmed, cancelled, refunded"),
    user_id: Optional[str] = Query(None),
    show_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """Listar todas las órdenes con filtros. Requiere admin"""
    result = await order_service.list_orders(
        db, page=page, limit=limit, status=status, user_id=user_id, show_id=show_id
    )
    return OrdersListResponse(
        items=[order_response(order) for order in result["items"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        total_pages=result["total_pages"],
    )


@router.get("/admin/stats", response_model=OrderStatsResponse)
async def get_order_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """Estadísticas de órdenes. Requiere admin"""
    stats = await order_service.order_stats(db)
    return OrderStatsResponse(
        total_count=stats["total_count"],
        pending_count=stats["pending_count"],
        confirmed_count=stats["confirmed_count"],
        cancelled_count=stats["cancelled_count"],
        refunded_count=stats["refunded_count"],
        today_count=stats["today_count"],
        month_count=stats["month_count"],
        total_revenue=float(stats["total_revenue"]),
        today_revenue=float(stats["today_revenue"]),
        month_revenue=float(stats["month_revenue"]),
        currency=settings.CURRENCY,
    )


@router.get("/admin/show/{show_id}", response_model=ShowOrdersResponse)
async def get_show_orders(
    show_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """Órdenes de una función y cantidad de entradas vendidas. Requiere admin"""
    orders = await order_service.orders_for_show(db, show_id)
    ticket_count = await order_service.show_ticket_count(db, show_id)
    return ShowOrdersResponse(
        show_id=show_id,
        ticket_count=ticket_count,
        orders=[order_response(order) for order in orders],
    )


# ==================== POR ORDEN ====================

@router.get("/by-number/{order_number}", response_model=OrderResponse)
async def get_order_by_number(
    order_number: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Obtener orden por número. 404 si no existe, 403 si no es del usuario"""
    order = await order_service.get_by_order_number(db, order_number, current_user)
    return order_response(order)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Obtener orden por id (dueño o admin)"""
    order = await order_service.get_by_id(db, order_id, current_user)
    return order_response(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Cancelar una orden (dueño o admin)

    Repetir la cancelación no es un error. No se devuelve saldo de gift card.
    """
    order = await order_service.cancel(db, order_id, current_user)
    return order_response(order)
