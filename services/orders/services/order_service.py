"""Servicio de órdenes: creación, cancelación y consultas"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID
import math
import uuid
import logging

from shared.config import settings
from shared.database.models import Order, OrderTicket, Show, User, utcnow
from shared.errors import (
    AppError,
    ValidationError,
    PaymentError,
    Forbidden,
    NotFoundError,
    ConflictError,
)
from shared.utils.retry import retry_with_backoff, RetryExhausted
from services.admin.services.audit_service import audit_service
from services.gift_cards.services.gift_card_service import gift_card_service, to_amount, normalize_code
from services.orders.models.order import CreateOrderRequest
from services.orders.services.order_number import generate_order_number

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# Transiciones válidas de Order.status. "refunded" es alcanzable pero
# ninguna operación la usa todavía.
ORDER_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"cancelled", "refunded"},
    "cancelled": set(),
    "refunded": set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, set())


def ensure_order_access(order: Order, user: User) -> None:
    """Solo el dueño de la orden o un admin pueden verla o modificarla"""
    if order.user_id != user.id and user.role != "admin":
        raise Forbidden("No tienes permisos para acceder a esta orden")


class OrderNumberCollision(Exception):
    """El número de orden generado ya existe"""


def is_order_number_collision(error: IntegrityError) -> bool:
    """
    True si la violación es del índice único de orders.order_number.

    Postgres informa el nombre del índice (ix_orders_order_number) y SQLite
    la columna (orders.order_number); ambos contienen "order_number".
    """
    return "order_number" in str(error.orig)


def _is_number(value) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        return None


class OrderService:
    """Servicio para el ciclo de vida de las órdenes"""

    def _validate_tickets(self, tickets) -> List[Tuple[str, Decimal, int, Decimal]]:
        """
        Validar las líneas y calcular subtotales.

        Returns:
            Lista de (tier_label, tier_price, quantity, subtotal)
        """
        if not tickets:
            raise ValidationError("La orden debe incluir al menos una entrada")

        lines = []
        errors = []
        for index, ticket in enumerate(tickets):
            label = (ticket.tier_label or "").strip()
            if not label:
                errors.append({"loc": ["tickets", index, "tier_label"], "msg": "Falta el tipo de entrada"})
                continue
            if not _is_number(ticket.tier_price):
                errors.append({"loc": ["tickets", index, "tier_price"], "msg": "El precio debe ser numérico"})
                continue
            try:
                price = to_amount(ticket.tier_price)
            except ValidationError:
                errors.append({"loc": ["tickets", index, "tier_price"], "msg": "Precio inválido"})
                continue
            if price < 0:
                errors.append({"loc": ["tickets", index, "tier_price"], "msg": "El precio no puede ser negativo"})
                continue
            # bool es subclase de int
            if isinstance(ticket.quantity, bool) or not isinstance(ticket.quantity, int) or ticket.quantity < 1:
                errors.append({"loc": ["tickets", index, "quantity"], "msg": "La cantidad debe ser al menos 1"})
                continue
            lines.append((label, price, ticket.quantity, (price * ticket.quantity).quantize(Decimal("0.01"))))

        if errors:
            raise ValidationError("Estructura de entradas inválida", errors)
        return lines

    async def _gift_card_amount(
        self,
        db: AsyncSession,
        code: Optional[str],
        requested: Optional[Decimal],
        tickets_total: Decimal
    ) -> Decimal:
        """Monto de gift card a aplicar, nunca mayor que el total de las entradas"""
        if not code:
            if requested is not None:
                raise ValidationError("Se indicó un monto de gift card sin código")
            return ZERO

        if requested is not None:
            requested = to_amount(requested)
            if requested <= 0:
                raise ValidationError("El monto de gift card debe ser mayor a 0")
            return min(requested, tickets_total)

        try:
            balance = await gift_card_service.get_balance(db, code)
        except NotFoundError:
            raise PaymentError("Gift card no encontrada")
        if balance <= 0 and tickets_total > 0:
            raise PaymentError("La gift card no tiene saldo")
        return min(balance, tickets_total)

    async def create(self, db: AsyncSession, user: User, request: CreateOrderRequest) -> Order:
        """
        Crear una orden confirmada y pagada

        La reserva de la gift card y el insert de la orden son una sola
        transacción. Si el número de orden choca con uno existente, se
        revierte todo y se reintenta con un número nuevo.

        Raises:
            ValidationError: lista de entradas vacía o mal formada
            NotFoundError: la función no existe
            PaymentError: gift card desconocida, vencida, canjeada o sin saldo
            ConflictError: no se pudo asignar un número de orden único
            IntegrityError: violación de integridad que no es choque de número de orden
        """
        lines = self._validate_tickets(request.tickets)

        show_id = _parse_uuid(request.show_id)
        show = await db.get(Show, show_id) if show_id else None
        if show is None:
            raise NotFoundError("Función no encontrada")

        tickets_total = sum((subtotal for _, _, _, subtotal in lines), ZERO)
        code = normalize_code(request.gift_card_code) or None
        amount_used = await self._gift_card_amount(db, code, request.gift_card_amount_used, tickets_total)
        total_amount = max(ZERO, tickets_total - amount_used)

        # Capturar valores ANTES de cualquier rollback (expira los objetos de la sesión)
        snapshot = {
            "user_id": user.id,
            "user_email": user.email,
            "user_name": user.name or "",
            "user_phone": request.user_phone or "",
            "user_id_number": request.user_id_number or "",
            "show_id": show.id,
            "show_title": show.title,
            "show_date": show.date_iso,
            "show_venue": show.venue_name,
        }
        order_id = uuid.uuid4()

        async def _persist() -> Order:
            order_number = generate_order_number()
            if amount_used > 0:
                await gift_card_service.reserve(
                    db, code, amount_used,
                    order_id=str(order_id),
                    description=f"Orden {order_number}",
                )

            order = Order(
                id=order_id,
                order_number=order_number,
                total_amount=total_amount,
                currency=settings.CURRENCY,
                status="confirmed",
                payment_status="paid",
                payment_method="credit_card",
                gift_card_code=code if amount_used > 0 else None,
                gift_card_amount_used=amount_used if amount_used > 0 else None,
                tickets=[
                    OrderTicket(
                        position=position,
                        tier_label=label,
                        tier_price=price,
                        quantity=quantity,
                        subtotal=subtotal,
                    )
                    for position, (label, price, quantity, subtotal) in enumerate(lines)
                ],
                **snapshot,
            )
            db.add(order)
            try:
                await db.commit()
            except IntegrityError as e:
                if not is_order_number_collision(e):
                    raise
                raise OrderNumberCollision(order_number) from e
            return order

        async def _on_collision(attempt, error):
            await db.rollback()

        try:
            order = await retry_with_backoff(
                _persist,
                max_attempts=settings.ORDER_NUMBER_MAX_ATTEMPTS,
                exceptions=(OrderNumberCollision,),
                on_retry=_on_collision,
            )
        except RetryExhausted as e:
            await db.rollback()
            logger.error(f"No se pudo asignar número de orden tras {e.attempts} intentos: {e.last_error}")
            raise ConflictError("No se pudo asignar un número de orden único, intenta nuevamente")
        except AppError:
            await db.rollback()
            raise
        except IntegrityError as e:
            await db.rollback()
            logger.error(f"Error de integridad al crear orden para {snapshot['user_email']}: {e.orig}")
            raise

        await db.refresh(order)
        logger.info(
            f"Orden creada: {order.order_number} por {order.user_email} "
            f"(total {order.total_amount} {order.currency}, gift card {amount_used})"
        )
        return order

    async def _get(self, db: AsyncSession, order_id: str) -> Order:
        order_uuid = _parse_uuid(order_id)
        order = await db.get(Order, order_uuid) if order_uuid else None
        if order is None:
            raise NotFoundError("Orden no encontrada")
        return order

    async def cancel(self, db: AsyncSession, order_id: str, user: User) -> Order:
        """
        Cancelar una orden (dueño o admin)

        Cancelar una orden ya cancelada no hace nada. El saldo de gift card
        usado no se devuelve.

        Raises:
            NotFoundError, Forbidden, ConflictError (orden reembolsada)
        """
        order = await self._get(db, order_id)
        ensure_order_access(order, user)

        if order.status == "cancelled":
            return order
        if not can_transition(order.status, "cancelled"):
            raise ConflictError(f"No se puede cancelar una orden en estado {order.status}")

        previous = order.status
        order.status = "cancelled"
        await db.commit()

        await audit_service.record(
            db, user, "update", "order", order.id,
            f"Orden {order.order_number}: {previous} -> cancelled"
        )
        await db.refresh(order)
        logger.info(f"Orden cancelada: {order.order_number} por {user.email}")
        return order

    async def get_by_owner(self, db: AsyncSession, user: User) -> List[Order]:
        stmt = select(Order).where(Order.user_id == user.id).order_by(Order.created_at.desc())
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_id(self, db: AsyncSession, order_id: str, user: User) -> Order:
        order = await self._get(db, order_id)
        ensure_order_access(order, user)
        return order

    async def get_by_order_number(self, db: AsyncSession, order_number: str, user: User) -> Order:
        result = await db.execute(select(Order).where(Order.order_number == order_number))
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError("Orden no encontrada")
        ensure_order_access(order, user)
        return order

    # ==================== ADMIN ====================

    async def list_orders(
        self,
        db: AsyncSession,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        show_id: Optional[str] = None
    ) -> Dict:
        """Listado paginado de todas las órdenes (más recientes primero)"""
        conditions = []
        if status:
            conditions.append(Order.status == status)
        # Filtros con id mal formado se ignoran
        if user_id and _parse_uuid(user_id):
            conditions.append(Order.user_id == _parse_uuid(user_id))
        if show_id and _parse_uuid(show_id):
            conditions.append(Order.show_id == _parse_uuid(show_id))

        stmt = select(Order).where(*conditions).order_by(Order.created_at.desc())
        stmt = stmt.offset((page - 1) * limit).limit(limit)
        count_stmt = select(func.count(Order.id)).where(*conditions)

        items = (await db.execute(stmt)).scalars().all()
        total = (await db.execute(count_stmt)).scalar() or 0

        return {
            "items": list(items),
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    async def order_stats(self, db: AsyncSession, now: Optional[datetime] = None) -> Dict:
        """Conteos por estado y recaudación de órdenes confirmadas (UTC)"""
        now = now or utcnow()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_month = start_of_day.replace(day=1)

        async def _count(*conditions) -> int:
            result = await db.execute(select(func.count(Order.id)).where(*conditions))
            return result.scalar() or 0

        async def _revenue(*conditions) -> Decimal:
            stmt = select(func.coalesce(func.sum(Order.total_amount), 0)).where(
                Order.status == "confirmed", *conditions
            )
            result = await db.execute(stmt)
            return to_amount(result.scalar() or 0)

        return {
            "total_count": await _count(),
            "pending_count": await _count(Order.status == "pending"),
            "confirmed_count": await _count(Order.status == "confirmed"),
            "cancelled_count": await _count(Order.status == "cancelled"),
            "refunded_count": await _count(Order.status == "refunded"),
            "today_count": await _count(Order.created_at >= start_of_day),
            "month_count": await _count(Order.created_at >= start_of_month),
            "total_revenue": await _revenue(),
            "today_revenue": await _revenue(Order.created_at >= start_of_day),
            "month_revenue": await _revenue(Order.created_at >= start_of_month),
        }

    async def orders_for_show(self, db: AsyncSession, show_id: str) -> List[Order]:
        show_uuid = _parse_uuid(show_id)
        if show_uuid is None:
            return []
        stmt = select(Order).where(Order.show_id == show_uuid).order_by(Order.created_at.desc())
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def show_ticket_count(self, db: AsyncSession, show_id: str) -> int:
        """Entradas vendidas para una función (solo órdenes confirmadas)"""
        show_uuid = _parse_uuid(show_id)
        if show_uuid is None:
            return 0
        stmt = (
            select(func.coalesce(func.sum(OrderTicket.quantity), 0))
            .join(Order, OrderTicket.order_id == Order.id)
            .where(Order.show_id == show_uuid, Order.status == "confirmed")
        )
        result = await db.execute(stmt)
        return int(result.scalar() or 0)


order_service = OrderService()
