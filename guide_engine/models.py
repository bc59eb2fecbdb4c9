"""
SQLAlchemy ORM Models for the guide engine

The engine persists schedule snapshots as opaque blobs keyed by string.
"""
from datetime import datetime, timezone
from sqlalchemy import String, LargeBinary, DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class Blob(Base):
    """Key-value blob row"""
    __tablename__ = "blobs"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Blob(key={self.key}, size={len(self.value or b'')})>"
