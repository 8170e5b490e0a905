"""Rutas de gift cards"""
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from shared.database.session import get_db
from shared.database.models import User
from shared.auth.dependencies import get_current_user, get_current_admin
from shared.errors import error_body
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.gift_cards.models.gift_card import (
    CreateGiftCardRequest,
    ValidateGiftCardRequest,
    UseGiftCardRequest,
    GiftCardResponse,
    GiftCardBalanceResponse,
    GiftCardsListResponse,
    GiftCardStatsResponse,
    gift_card_response,
)
from services.gift_cards.services.gift_card_service import gift_card_service


router = APIRouter()


@router.post("", response_model=GiftCardResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["gift_card"])
async def create_gift_card(
    request: Request,  # Necesario para rate limiter
    body: CreateGiftCardRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Comprar una gift card (100 a 5000, válida por 5 años)

    El pago se considera aprobado.
    """
    gift_card = await gift_card_service.create_gift_card(
        db,
        purchaser=current_user,
        amount=body.amount,
        recipient_email=body.recipient_email,
        recipient_name=body.recipient_name,
        recipient_phone=body.recipient_phone,
        is_for_self=body.is_for_self,
        message=body.message,
    )
    return gift_card_response(gift_card)


@router.get("/my", response_model=List[GiftCardResponse])
async def get_my_gift_cards(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Gift cards recibidas por el email del usuario actual"""
    gift_cards = await gift_card_service.get_received(db, current_user.email)
    return [gift_card_response(gc) for gc in gift_cards]


@router.get("/purchased", response_model=List[GiftCardResponse])
async def get_purchased_gift_cards(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Gift cards compradas por el usuario actual"""
    gift_cards = await gift_card_service.get_purchased(db, current_user)
    return [gift_card_response(gc) for gc in gift_cards]


@router.post("/validate", response_model=GiftCardBalanceResponse)
@limiter.limit(RATE_LIMITS["gift_card"])
async def validate_gift_card(
    request: Request,
    body: ValidateGiftCardRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Verificar si un código se puede usar

    Si no es válido responde 400 con el motivo y, si la tarjeta existe,
    su saldo y estado.
    """
    result = await gift_card_service.validate(db, body.code)
    gift_card = result["gift_card"]

    if not result["valid"]:
        content = error_body(result["error"])
        content["data"] = (
            {"balance": float(gift_card.balance), "status": gift_card.status}
            if gift_card is not None else None
        )
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)

    return GiftCardBalanceResponse(
        code=gift_card.code,
        balance=float(gift_card.balance),
        status=gift_card.status,
        expires_at=gift_card.expires_at,
    )


@router.post("/use", response_model=GiftCardResponse)
@limiter.limit(RATE_LIMITS["gift_card"])
async def use_gift_card(
    request: Request,
    body: UseGiftCardRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Descontar saldo de una gift card. 402 si no se puede usar"""
    gift_card = await gift_card_service.use(
        db, body.code, body.amount, order_id=body.order_id, description=body.description
    )
    return gift_card_response(gift_card)


# ==================== ADMIN ====================

@router.get("/admin/all", response_model=GiftCardsListResponse)
async def list_all_gift_cards(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, description="active, partially_used, redeemed, expired"),
    email: Optional[str] = Query(None, description="Email de comprador o destinatario"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """Listar todas las gift cards. Requiere admin"""
    result = await gift_card_service.list_gift_cards(db, page=page, limit=limit, status=status, email=email)
    return GiftCardsListResponse(
        items=[gift_card_response(gc) for gc in result["items"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        total_pages=result["total_pages"],
    )


@router.get("/admin/stats", response_model=GiftCardStatsResponse)
async def get_gift_card_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    stats = await gift_card_service.get_stats(db)
    return GiftCardStatsResponse(
        total_count=stats["total_count"],
        active_count=stats["active_count"],
        partially_used_count=stats["partially_used_count"],
        redeemed_count=stats["redeemed_count"],
        expired_count=stats["expired_count"],
        total_value=float(stats["total_value"]),
        active_balance=float(stats["active_balance"]),
    )


@router.get("/{code}", response_model=GiftCardResponse)
async def get_gift_card(
    code: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Gift card por código (destinatario, comprador o admin)"""
    gift_card = await gift_card_service.get_for_user(db, code, current_user)
    return gift_card_response(gift_card)
