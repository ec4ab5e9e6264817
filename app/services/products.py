"""Product listings: create with optional image, list, filter, delete."""

import re

from beanie import PydanticObjectId
from beanie.operators import RegEx
from pydantic import BaseModel, Field, ValidationError, field_validator

from app.core.audit import log_event
from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.core.logging import get_logger
from app.models.product import Product, ProductImage
from app.models.user import User, UserRole
from app.services.orders import link_id
from app.storage.base import StorageBackend

log = get_logger(__name__)


class ProductCreate(BaseModel):
    name: str = Field(min_length=3, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    price: float = Field(gt=0)
    category: str = Field(min_length=3, max_length=50)
    stock: int = Field(ge=0)
    location: str = Field(min_length=3, max_length=200)

    @field_validator("price")
    @classmethod
    def at_most_two_decimals(cls, v: float) -> float:
        if round(v, 2) != v:
            raise ValueError("Price must have at most 2 decimal places")
        return v


def validate_product(data: dict) -> ProductCreate:
    """Validate form fields; all problems reported together."""
    try:
        return ProductCreate(**data)
    except ValidationError as e:
        messages = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise BadRequestError(", ".join(messages), details={"errors": messages}) from e


async def add_product(
    seller: User,
    body: ProductCreate,
    storage: StorageBackend | None = None,
    image: bytes | None = None,
    filename: str | None = None,
    content_type: str | None = None,
) -> Product:
    images = []
    if image:
        stored = await storage.upload_image(image, filename, content_type)
        images.append(ProductImage(url=stored.url, public_id=stored.public_id))
    product = Product(**body.model_dump(), seller=seller, images=images)
    await product.insert()
    log.info("product_created", product_id=str(product.id), seller_id=str(seller.id))
    return product


async def list_products() -> list[Product]:
    return await Product.find_all().sort(-Product.created_at).to_list()


async def get_product(product_id: PydanticObjectId) -> Product:
    product = await Product.get(product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


async def list_for_seller(seller_id: PydanticObjectId) -> list[Product]:
    return await Product.find(Product.seller.id == seller_id).sort(-Product.created_at).to_list()


async def filter_products(name: str | None = None, price: float | None = None, category: str | None = None) -> list[Product]:
    criteria = []
    if name:
        criteria.append(RegEx(Product.name, re.escape(name), options="i"))
    if price is not None:
        criteria.append(Product.price == price)
    if category:
        criteria.append(Product.category == category)
    return await Product.find(*criteria).to_list()


async def delete_product(product_id: PydanticObjectId, actor: User, storage: StorageBackend | None = None) -> None:
    product = await get_product(product_id)
    if actor.role != UserRole.ADMIN and actor.id != link_id(product.seller):
        raise ForbiddenError("You do not have permission to delete this product")
    if storage is not None:
        for img in product.images:
            await storage.delete(img.public_id)
    await product.delete()
    log.info("product_deleted", product_id=str(product_id))
    await log_event("product_deleted", "product", str(product_id), actor=str(actor.id))


def product_to_dict(product: Product) -> dict:
    return {
        "id": str(product.id),
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "category": product.category,
        "stock": product.stock,
        "location": product.location,
        "seller_id": str(link_id(product.seller)),
        "images": [img.model_dump() for img in product.images],
        "created_at": product.created_at.isoformat(),
    }
