from sqlalchemy import Column, DateTime, Integer, String, Text

from shared.config.database import Base, utcnow


class DeadLetter(Base):
    """A notification that exhausted its delivery attempts."""

    __tablename__ = "notification_dead_letters"

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(50), nullable=False, index=True)  # 'dispatch' or 'consume'
    payload = Column(Text, nullable=False)
    error = Column(Text, nullable=False)
    attempts = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
