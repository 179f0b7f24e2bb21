import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from shared.config.database import Base, utcnow


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    AUTHORIZED = "AUTHORIZED"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(50), nullable=False)
    transaction_id = Column(String(255), unique=True, nullable=True)
    status = Column(Enum(PaymentStatus, native_enum=False, length=20), nullable=False, default=PaymentStatus.PENDING)
    payment_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="payment", lazy="raise")
