"""Session credit model definitions."""

from sqlalchemy import Column, ForeignKey, Integer
from therapy_backend.database import Base


class UserCredit(Base):
    """Prepaid session credits; one credit books one session."""
    __tablename__ = "user_credits"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    credits_balance = Column(Integer, nullable=False, default=0)
    credits_used = Column(Integer, nullable=False, default=0)
