import enum

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from shared.config.database import Base, utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    # Null for per-order snapshots
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    street = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(100), nullable=False)
    address_type = Column(String(30), nullable=False)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    order_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=False, default=OrderStatus.PENDING)
    shipping_address_id = Column(Integer, ForeignKey("addresses.id"), nullable=True)

    user = relationship("User", lazy="raise")
    items = relationship("OrderItem", cascade="all, delete-orphan", lazy="raise", order_by="OrderItem.id")
    shipping_address = relationship("Address", cascade="all, delete-orphan", single_parent=True, lazy="raise")
    payment = relationship(
        "Payment", back_populates="order", uselist=False, cascade="all, delete-orphan", lazy="raise"
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    # Cart price at placement; never follows later product price changes
    price_at_purchase = Column(Numeric(10, 2), nullable=False)

    product = relationship("Product", lazy="raise")

    @property
    def subtotal(self):
        return self.price_at_purchase * self.quantity
