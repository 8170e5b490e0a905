"""Modelos Pydantic para órdenes"""
from pydantic import BaseModel, StrictInt, StrictFloat
from typing import Optional, List, Union
from datetime import datetime


class TicketLineRequest(BaseModel):
    """Línea de la orden tal como la envía el cliente (números JSON, sin coerción)"""
    tier_label: str
    tier_price: Union[StrictInt, StrictFloat]
    quantity: StrictInt


class CreateOrderRequest(BaseModel):
    show_id: str
    tickets: List[TicketLineRequest]
    user_phone: Optional[str] = None  # Si no viene, queda vacío
    user_id_number: Optional[str] = None
    gift_card_code: Optional[str] = None
    gift_card_amount_used: Optional[Union[StrictInt, StrictFloat]] = None  # Sin monto: se usa todo el saldo posible


class OrderTicketResponse(BaseModel):
    tier_label: str
    tier_price: float
    quantity: int
    subtotal: float


class OrderResponse(BaseModel):
    id: str
    order_number: str
    user_id: str
    user_email: str
    user_name: str
    user_phone: str
    user_id_number: str
    show_id: str
    show_title: str
    show_date: str
    show_venue: str
    tickets: List[OrderTicketResponse]
    total_amount: float
    currency: str
    status: str  # pending, confirmed, cancelled, refunded
    payment_status: str
    payment_method: Optional[str] = None
    gift_card_code: Optional[str] = None
    gift_card_amount_used: Optional[float] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class OrdersListResponse(BaseModel):
    """Listado paginado (admin)"""
    items: List[OrderResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class OrderStatsResponse(BaseModel):
    total_count: int
    pending_count: int
    confirmed_count: int
    cancelled_count: int
    refunded_count: int
    today_count: int
    month_count: int
    total_revenue: float
    today_revenue: float
    month_revenue: float
    currency: str = "ILS"


class ShowOrdersResponse(BaseModel):
    show_id: str
    ticket_count: int  # Entradas en órdenes confirmadas
    orders: List[OrderResponse]


def order_response(order) -> OrderResponse:
    return OrderResponse(
        id=str(order.id),
        order_number=order.order_number,
        user_id=str(order.user_id),
        user_email=order.user_email,
        user_name=order.user_name or "",
        user_phone=order.user_phone or "",
        user_id_number=order.user_id_number or "",
        show_id=str(order.show_id),
        show_title=order.show_title,
        show_date=order.show_date,
        show_venue=order.show_venue,
        tickets=[
            OrderTicketResponse(
                tier_label=ticket.tier_label,
                tier_price=float(ticket.tier_price),
                quantity=ticket.quantity,
                subtotal=float(ticket.subtotal),
            )
            for ticket in order.tickets
        ],
        total_amount=float(order.total_amount),
        currency=order.currency,
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        gift_card_code=order.gift_card_code,
        gift_card_amount_used=float(order.gift_card_amount_used) if order.gift_card_amount_used is not None else None,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )
