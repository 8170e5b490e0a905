"""Servicio de gift cards: emisión, saldo y consumo"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_, and_
from sqlalchemy.exc import IntegrityError
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional
import math
import secrets
import string
import logging

from shared.config import settings
from shared.database.models import GiftCard, GiftCardUsage, User, utcnow
from shared.errors import NotFoundError, PaymentError, ValidationError, Forbidden, ConflictError
from shared.utils.retry import retry_with_backoff, RetryExhausted
from services.admin.services.audit_service import audit_service

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_MAX_ATTEMPTS = 5
CENTS = Decimal("0.01")


def generate_gift_card_code() -> str:
    """Código XXXX-XXXX-XXXX-XXXX (A-Z, 0-9)"""
    return "-".join(
        "".join(secrets.choice(CODE_ALPHABET) for _ in range(4))
        for _ in range(4)
    )


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def to_amount(value) -> Decimal:
    """Convertir un monto a Decimal con 2 decimales"""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Monto inválido: {value}")
    if not amount.is_finite():
        raise ValidationError(f"Monto inválido: {value}")
    return amount.quantize(CENTS)


def add_years(moment, years: int):
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # 29 de febrero
        return moment.replace(year=moment.year + years, day=28)


def is_expired(gift_card: GiftCard) -> bool:
    return gift_card.status == "expired" or utcnow() > gift_card.expires_at


class GiftCardService:
    """Servicio para operaciones con gift cards"""

    async def create_gift_card(
        self,
        db: AsyncSession,
        purchaser: User,
        amount,
        recipient_email: Optional[str] = None,
        recipient_name: Optional[str] = None,
        recipient_phone: Optional[str] = None,
        is_for_self: bool = False,
        message: Optional[str] = None
    ) -> GiftCard:
        """
        Emitir una gift card (el pago se considera exitoso)

        Si is_for_self, el destinatario es el propio comprador.

        Raises:
            ValidationError: monto fuera de rango o destinatario incompleto
            ConflictError: no se pudo generar un código único
        """
        amount = to_amount(amount)
        if amount < settings.GIFT_CARD_MIN_AMOUNT or amount > settings.GIFT_CARD_MAX_AMOUNT:
            raise ValidationError(
                f"El monto debe estar entre {settings.GIFT_CARD_MIN_AMOUNT} y {settings.GIFT_CARD_MAX_AMOUNT}"
            )

        if is_for_self:
            recipient_email = purchaser.email
            recipient_name = purchaser.name or purchaser.email
        if not recipient_email or not recipient_name:
            raise ValidationError("Faltan los datos del destinatario")

        purchased_at = utcnow()
        expires_at = add_years(purchased_at, settings.GIFT_CARD_VALIDITY_YEARS)

        async def _insert() -> GiftCard:
            gift_card = GiftCard(
                code=generate_gift_card_code(),
                amount=amount,
                balance=amount,
                currency=settings.CURRENCY,
                status="active",
                purchaser_id=purchaser.id,
                purchaser_email=purchaser.email,
                purchaser_name=purchaser.name or "",
                recipient_email=recipient_email.strip().lower(),
                recipient_name=recipient_name,
                recipient_phone=recipient_phone,
                is_for_self=is_for_self,
                message=message,
                purchased_at=purchased_at,
                expires_at=expires_at,
            )
            db.add(gift_card)
            await db.commit()
            return gift_card

        async def _rollback(attempt, error):
            await db.rollback()

        try:
            gift_card = await retry_with_backoff(
                _insert,
                max_attempts=CODE_MAX_ATTEMPTS,
                exceptions=(IntegrityError,),
                on_retry=_rollback,
            )
        except RetryExhausted:
            await db.rollback()
            logger.error(f"No se pudo generar un código de gift card único tras {CODE_MAX_ATTEMPTS} intentos")
            raise ConflictError("No se pudo generar un código de gift card único")

        await audit_service.record(
            db, purchaser, "create", "gift-card", gift_card.id,
            f"Gift card {gift_card.code} por {gift_card.amount} {gift_card.currency}"
        )
        await db.refresh(gift_card)
        logger.info(f"Gift card creada: {gift_card.code} ({gift_card.amount}) para {gift_card.recipient_email}")
        return gift_card

    async def _find(self, db: AsyncSession, code: str, for_update: bool = False) -> Optional[GiftCard]:
        stmt = select(GiftCard).where(GiftCard.code == normalize_code(code))
        if for_update:
            # Releer la fila bloqueada aunque ya esté en la sesión
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def _mark_expired(self, db: AsyncSession, gift_cards: List[GiftCard]) -> None:
        """Pasar a expired las tarjetas activas vencidas"""
        now = utcnow()
        changed = False
        for gift_card in gift_cards:
            if gift_card.status == "active" and now > gift_card.expires_at:
                gift_card.status = "expired"
                changed = True
        if changed:
            await db.commit()

    async def get_by_code(self, db: AsyncSession, code: str) -> Optional[GiftCard]:
        gift_card = await self._find(db, code)
        if gift_card is not None:
            await self._mark_expired(db, [gift_card])
        return gift_card

    async def get_balance(self, db: AsyncSession, code: str) -> Decimal:
        """
        Saldo disponible de una gift card

        Raises:
            NotFoundError: el código no existe
        """
        gift_card = await self._find(db, code)
        if gift_card is None:
            raise NotFoundError("Gift card no encontrada")
        return gift_card.balance

    async def reserve(
        self,
        db: AsyncSession,
        code: str,
        amount,
        order_id: Optional[str] = None,
        description: Optional[str] = None
    ) -> GiftCard:
        """
        Descontar saldo de una gift card y registrar el uso.

        No hace commit: el llamador es dueño de la transacción y decide si
        confirma o revierte junto con el resto de su unidad de trabajo.

        Raises:
            ValidationError: monto <= 0
            PaymentError: código desconocido, vencido, canjeado o saldo insuficiente
        """
        amount = to_amount(amount)
        if amount <= 0:
            raise ValidationError("El monto a usar debe ser mayor a 0")

        gift_card = await self._find(db, code, for_update=True)
        if gift_card is None:
            raise PaymentError("Gift card no encontrada")
        if gift_card.status == "redeemed":
            raise PaymentError("La gift card ya fue canjeada en su totalidad")
        if is_expired(gift_card):
            raise PaymentError("La gift card está vencida")
        if amount > gift_card.balance:
            raise PaymentError(
                f"Saldo insuficiente. Saldo actual: {gift_card.balance} {gift_card.currency}"
            )

        now = utcnow()
        gift_card.balance = gift_card.balance - amount
        gift_card.usage_history.append(GiftCardUsage(
            used_at=now,
            amount=amount,
            order_id=order_id,
            description=description or "Uso de gift card",
        ))

        if gift_card.balance == 0:
            gift_card.status = "redeemed"
            gift_card.redeemed_at = now
        else:
            gift_card.status = "partially_used"

        await db.flush()
        return gift_card

    async def use(
        self,
        db: AsyncSession,
        code: str,
        amount,
        order_id: Optional[str] = None,
        description: Optional[str] = None
    ) -> GiftCard:
        """Consumir saldo fuera del flujo de órdenes (reserve + commit)"""
        try:
            gift_card = await self.reserve(db, code, amount, order_id, description)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await db.refresh(gift_card)
        logger.info(f"Gift card {gift_card.code}: usado {to_amount(amount)}, saldo {gift_card.balance}")
        return gift_card

    async def validate(self, db: AsyncSession, code: str) -> Dict:
        """
        Verificar si una gift card se puede usar

        Returns:
            {valid, error?, gift_card?}
        """
        gift_card = await self.get_by_code(db, code)

        if gift_card is None:
            return {"valid": False, "error": "Gift card no encontrada", "gift_card": None}
        if gift_card.status == "redeemed":
            return {"valid": False, "error": "La gift card ya fue canjeada en su totalidad", "gift_card": gift_card}
        if is_expired(gift_card):
            return {"valid": False, "error": "La gift card está vencida", "gift_card": gift_card}
        if gift_card.balance <= 0:
            return {"valid": False, "error": "La gift card no tiene saldo", "gift_card": gift_card}

        return {"valid": True, "error": None, "gift_card": gift_card}

    async def get_for_user(self, db: AsyncSession, code: str, user: User) -> GiftCard:
        """Gift card por código, visible solo para destinatario, comprador o admin"""
        gift_card = await self.get_by_code(db, code)
        if gift_card is None:
            raise NotFoundError("Gift card no encontrada")

        email = (user.email or "").lower()
        if (
            user.role != "admin"
            and gift_card.purchaser_id != user.id
            and gift_card.recipient_email != email
            and gift_card.purchaser_email != email
        ):
            raise Forbidden("No tienes permisos para ver esta gift card")
        return gift_card

    async def get_received(self, db: AsyncSession, email: str) -> List[GiftCard]:
        stmt = select(GiftCard).where(
            GiftCard.recipient_email == (email or "").lower()
        ).order_by(GiftCard.purchased_at.desc())
        result = await db.execute(stmt)
        gift_cards = list(result.scalars().all())
        await self._mark_expired(db, gift_cards)
        return gift_cards

    async def get_purchased(self, db: AsyncSession, user: User) -> List[GiftCard]:
        stmt = select(GiftCard).where(
            GiftCard.purchaser_id == user.id
        ).order_by(GiftCard.purchased_at.desc())
        result = await db.execute(stmt)
        gift_cards = list(result.scalars().all())
        await self._mark_expired(db, gift_cards)
        return gift_cards

    async def list_gift_cards(
        self,
        db: AsyncSession,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        email: Optional[str] = None
    ) -> Dict:
        """Listado paginado para admin (más recientes primero)"""
        conditions = []
        if status:
            conditions.append(GiftCard.status == status)
        if email:
            email = email.lower()
            conditions.append(or_(GiftCard.purchaser_email == email, GiftCard.recipient_email == email))

        stmt = select(GiftCard).where(*conditions).order_by(GiftCard.purchased_at.desc())
        stmt = stmt.offset((page - 1) * limit).limit(limit)
        count_stmt = select(func.count(GiftCard.id)).where(*conditions)

        items = list((await db.execute(stmt)).scalars().all())
        total = (await db.execute(count_stmt)).scalar() or 0
        await self._mark_expired(db, items)

        return {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    async def get_stats(self, db: AsyncSession) -> Dict:
        now = utcnow()

        async def _count(*conditions) -> int:
            result = await db.execute(select(func.count(GiftCard.id)).where(*conditions))
            return result.scalar() or 0

        async def _sum(column, *conditions) -> Decimal:
            result = await db.execute(select(func.coalesce(func.sum(column), 0)).where(*conditions))
            return to_amount(result.scalar() or 0)

        return {
            "total_count": await _count(),
            "active_count": await _count(GiftCard.status == "active", GiftCard.expires_at > now),
            "partially_used_count": await _count(GiftCard.status == "partially_used"),
            "redeemed_count": await _count(GiftCard.status == "redeemed"),
            "expired_count": await _count(or_(
                GiftCard.status == "expired",
                and_(GiftCard.status == "active", GiftCard.expires_at <= now),
            )),
            "total_value": await _sum(GiftCard.amount),
            "active_balance": await _sum(
                GiftCard.balance,
                GiftCard.status.in_(("active", "partially_used")),
                GiftCard.expires_at > now,
            ),
        }


gift_card_service = GiftCardService()
