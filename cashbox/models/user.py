# cashbox/models/user.py
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, UniqueConstraint

from cashbox.models.base import Base

# Roles (strings, used by the RBAC dependencies)
ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_CASHIER = "cashier"

VALID_ROLES = {ROLE_OWNER, ROLE_ADMIN, ROLE_CASHIER}


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("username", name="uq_users_username"),)

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default=ROLE_CASHIER)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def has_role(self, *roles: str) -> bool:
        return self.role in roles

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.full_name,
            "role": self.role,
        }
