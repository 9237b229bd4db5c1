"""SQLAlchemy ORM models."""

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from facial_signon.db.base import Base


class User(Base):
    """Local user account, optionally bound to an Axiam client id."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False)
    vendor_client_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    __table_args__ = (
        UniqueConstraint("email", name="users_email_key"),
        UniqueConstraint("vendor_client_id", name="users_vendor_client_id_key"),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, bound={self.vendor_client_id is not None})>"
