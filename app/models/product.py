from datetime import datetime

from beanie import Document, Link
from pydantic import BaseModel, Field

from app.models.user import User


class ProductImage(BaseModel):
    url: str
    public_id: str


class Product(Document):
    name: str
    description: str
    price: float
    category: str
    stock: int = 0
    location: str
    seller: Link[User]
    images: list[ProductImage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "products"
        indexes = [
            [("seller", 1)],
            [("category", 1)],
        ]
