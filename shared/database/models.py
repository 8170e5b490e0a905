"""Modelos SQLAlchemy"""
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, ForeignKey, Numeric, Text, JSON, Uuid, LargeBinary,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship, deferred
from datetime import datetime, timezone
import uuid
from shared.database.connection import Base


def utcnow() -> datetime:
    """Hora actual en UTC sin tzinfo (todas las columnas guardan UTC naive)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


USER_ROLES = ("admin", "editor")
SHOW_STATUSES = ("available", "sold_out", "closed", "few_left")
ORDER_STATUSES = ("pending", "confirmed", "cancelled", "refunded")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
GIFT_CARD_STATUSES = ("active", "partially_used", "redeemed", "expired")
AUDIT_ACTIONS = ("create", "update", "delete", "login", "logout")
AUDIT_ENTITY_TYPES = ("user", "show", "page", "media", "site-settings", "faq", "order", "gift-card")
PAGE_KEYS = ("about", "terms", "accessibility", "privacy", "contact", "mailing-list")


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, default="")
    email = Column(String, unique=True, nullable=False, index=True)  # siempre en minúsculas
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="editor")  # admin, editor
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String, unique=True, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Show(Base):
    __tablename__ = "shows"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=True, index=True)
    date_iso = Column(String, nullable=False, index=True)  # ISO 8601 tal como lo envía el CMS
    doors_time = Column(String, nullable=True)
    description = Column(Text, nullable=False, default="")
    image_media_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="available")  # available, sold_out, closed, few_left
    is_standing = Column(Boolean, nullable=True)
    is_360 = Column(Boolean, nullable=True)
    venue_name = Column(String, nullable=False)
    venue_address = Column(String, nullable=False)
    ticket_tiers = Column(JSON, nullable=False, default=list)  # [{label, price, currency}]
    tags = Column(JSON, nullable=False, default=list)
    featured = Column(Boolean, nullable=False, default=False)
    published = Column(Boolean, nullable=False, default=False)
    archived = Column(Boolean, nullable=False, default=False)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    # Snapshot del comprador al momento de la compra
    user_email = Column(String, nullable=False, index=True)
    user_name = Column(String, nullable=False, default="")
    user_phone = Column(String, nullable=False, default="")
    user_id_number = Column(String, nullable=False, default="")

    # Snapshot de la función (no sigue ediciones posteriores del Show)
    show_id = Column(Uuid, nullable=False, index=True)
    show_title = Column(String, nullable=False)
    show_date = Column(String, nullable=False)
    show_venue = Column(String, nullable=False)

    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String, nullable=False, default="ILS")
    status = Column(String, nullable=False, default="confirmed", index=True)  # pending, confirmed, cancelled, refunded
    payment_status = Column(String, nullable=False, default="paid")  # pending, paid, failed, refunded
    payment_method = Column(String, nullable=True, default="credit_card")
    gift_card_code = Column(String, nullable=True)
    gift_card_amount_used = Column(Numeric(12, 2), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relaciones
    tickets = relationship(
        "OrderTicket",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderTicket.position",
        lazy="selectin",
    )


class OrderTicket(Base):
    """Línea de la orden: tier, precio unitario, cantidad y subtotal"""
    __tablename__ = "order_tickets"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_tickets_quantity_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    tier_label = Column(String, nullable=False)
    tier_price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)

    # Relaciones
    order = relationship("Order", back_populates="tickets")


class GiftCard(Base):
    __tablename__ = "gift_cards"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_gift_cards_balance_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String, unique=True, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    balance = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False, default="ILS")
    status = Column(String, nullable=False, default="active", index=True)  # active, partially_used, redeemed, expired
    purchaser_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    purchaser_email = Column(String, nullable=False, index=True)
    purchaser_name = Column(String, nullable=False, default="")
    recipient_email = Column(String, nullable=False, index=True)
    recipient_name = Column(String, nullable=False)
    recipient_phone = Column(String, nullable=True)
    is_for_self = Column(Boolean, nullable=False, default=False)
    message = Column(Text, nullable=True)
    purchased_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    redeemed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relaciones
    usage_history = relationship(
        "GiftCardUsage",
        back_populates="gift_card",
        cascade="all, delete-orphan",
        order_by="GiftCardUsage.used_at",
        lazy="selectin",
    )


class GiftCardUsage(Base):
    __tablename__ = "gift_card_usages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    gift_card_id = Column(Uuid, ForeignKey("gift_cards.id", ondelete="CASCADE"), nullable=False, index=True)
    used_at = Column(DateTime, default=utcnow, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    order_id = Column(String, nullable=True)
    description = Column(String, nullable=False)

    # Relaciones
    gift_card = relationship("GiftCard", back_populates="usage_history")


class AuditLog(Base):
    """Registro append-only de acciones. No existe ruta de update ni delete."""
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_user_id = Column(Uuid, nullable=False, index=True)
    actor_email = Column(String, nullable=False)
    action = Column(String, nullable=False, index=True)  # create, update, delete, login, logout
    entity_type = Column(String, nullable=False, index=True)
    entity_id = Column(String, nullable=True)
    diff_summary = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class Media(Base):
    """Archivo subido desde el panel; los bytes se guardan tal cual, sin redimensionar"""
    __tablename__ = "media"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    original_name = Column(String, nullable=False, index=True)
    content_type = Column(String, nullable=False, index=True)
    size_bytes = Column(Integer, nullable=False)
    alt = Column(String, nullable=False, default="")
    # Fuera de los listados: solo se lee al servir el archivo
    data = deferred(Column(LargeBinary, nullable=False))
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class Page(Base):
    __tablename__ = "pages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    key = Column(String, unique=True, nullable=False)  # about, terms, accessibility, privacy, contact, mailing-list
    title = Column(String, nullable=False)
    content_rich_text = Column(Text, nullable=False)
    pdf_media_id = Column(String, nullable=True)
    updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class FAQ(Base):
    __tablename__ = "faqs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    category = Column(String, nullable=False, default="General")
    order = Column(Integer, nullable=False, default=0, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SiteSettings(Base):
    """Configuración global del sitio (una sola fila)"""
    __tablename__ = "site_settings"
    __table_args__ = (
        UniqueConstraint("singleton_key", name="uq_site_settings_singleton"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    singleton_key = Column(String, nullable=False, default="default")
    chandelier = Column(JSON, nullable=False, default=dict)
    announcements = Column(JSON, nullable=False, default=list)
    marquee_items = Column(JSON, nullable=False, default=list)
    featured_sections = Column(JSON, nullable=False, default=list)
    nav_links = Column(JSON, nullable=False, default=list)
    footer = Column(JSON, nullable=False, default=dict)
    updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
