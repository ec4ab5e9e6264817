from datetime import datetime
from enum import Enum

from beanie import Document, Indexed
from pydantic import Field


class UserRole(str, Enum):
    BUYER = "Buyer"
    SELLER = "Seller"
    ADMIN = "Admin"


class User(Document):
    username: str
    email: Indexed(str, unique=True)  # stored lowercased
    password_hash: str
    address: str | None = None
    phone_number: str  # canonical 25XXXXXXXXX
    role: UserRole = UserRole.BUYER
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
