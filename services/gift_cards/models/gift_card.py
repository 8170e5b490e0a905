"""Modelos Pydantic para gift cards"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from decimal import Decimal
from datetime import datetime


class CreateGiftCardRequest(BaseModel):
    amount: Decimal = Field(..., ge=100, le=5000)
    recipient_email: Optional[EmailStr] = None  # Requerido si no es para uno mismo
    recipient_name: Optional[str] = Field(None, min_length=2)
    recipient_phone: Optional[str] = None
    is_for_self: bool = False
    message: Optional[str] = Field(None, max_length=500)


class ValidateGiftCardRequest(BaseModel):
    code: str = Field(..., min_length=1)


class UseGiftCardRequest(BaseModel):
    code: str = Field(..., min_length=1)
    amount: Decimal
    order_id: Optional[str] = None
    description: Optional[str] = None


class GiftCardUsageResponse(BaseModel):
    used_at: datetime
    amount: float
    order_id: Optional[str] = None
    description: str


class GiftCardResponse(BaseModel):
    id: str
    code: str
    amount: float
    balance: float
    currency: str
    status: str  # active, partially_used, redeemed, expired
    purchaser_email: str
    purchaser_name: str
    recipient_email: str
    recipient_name: str
    recipient_phone: Optional[str] = None
    is_for_self: bool
    message: Optional[str] = None
    purchased_at: datetime
    expires_at: datetime
    redeemed_at: Optional[datetime] = None
    usage_history: List[GiftCardUsageResponse] = []


class GiftCardBalanceResponse(BaseModel):
    code: str
    balance: float
    status: str
    expires_at: datetime


class GiftCardsListResponse(BaseModel):
    items: List[GiftCardResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class GiftCardStatsResponse(BaseModel):
    total_count: int
    active_count: int
    partially_used_count: int
    redeemed_count: int
    expired_count: int
    total_value: float
    active_balance: float


def gift_card_response(gift_card) -> GiftCardResponse:
    return GiftCardResponse(
        id=str(gift_card.id),
        code=gift_card.code,
        amount=float(gift_card.amount),
        balance=float(gift_card.balance),
        currency=gift_card.currency,
        status=gift_card.status,
        purchaser_email=gift_card.purchaser_email,
        purchaser_name=gift_card.purchaser_name or "",
        recipient_email=gift_card.recipient_email,
        recipient_name=gift_card.recipient_name,
        recipient_phone=gift_card.recipient_phone,
        is_for_self=gift_card.is_for_self,
        message=gift_card.message,
        purchased_at=gift_card.purchased_at,
        expires_at=gift_card.expires_at,
        redeemed_at=gift_card.redeemed_at,
        usage_history=[
            GiftCardUsageResponse(
                used_at=usage.used_at,
                amount=float(usage.amount),
                order_id=usage.order_id,
                description=usage.description,
            )
            for usage in gift_card.usage_history
        ],
    )
