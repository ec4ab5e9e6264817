from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from app.deps import get_current_user, object_id, require_roles
from app.models.user import User, UserRole
from app.services import products as products_service
from app.storage.base import StorageBackend, get_storage

router = APIRouter()


@router.post("/add", status_code=status.HTTP_201_CREATED)
async def add_product(
    name: str = Form(""),
    description: str = Form(""),
    price: str = Form(""),
    category: str = Form(""),
    stock: str = Form(""),
    location: str = Form(""),
    image: UploadFile | None = File(None),
    seller: User = Depends(require_roles(UserRole.SELLER, UserRole.ADMIN)),
    storage: StorageBackend = Depends(get_storage),
):
    """Create a product listing; optional `image` file is stored and linked."""
    body = products_service.validate_product({
        "name": name,
        "description": description,
        "price": price,
        "category": category,
        "stock": stock,
        "location": location,
    })
    content = await image.read() if image is not None else None
    product = await products_service.add_product(
        seller,
        body,
        storage=storage,
        image=content,
        filename=image.filename if image is not None else None,
        content_type=image.content_type if image is not None else None,
    )
    return {
        "success": True,
        "message": "Product added successfully",
        "product": products_service.product_to_dict(product),
    }


@router.get("/getAll")
async def get_all_products():
    products = await products_service.list_products()
    return {
        "success": True,
        "count": len(products),
        "products": [products_service.product_to_dict(p) for p in products],
    }


@router.get("/getById/{product_id}")
async def get_product_by_id(product_id: str):
    product = await products_service.get_product(object_id(product_id, "product id"))
    return {"success": True, "product": products_service.product_to_dict(product)}


@router.get("/getBySellerId")
async def get_by_seller_id(user: User = Depends(get_current_user)):
    """Products listed by the current user."""
    products = await products_service.list_for_seller(user.id)
    return {
        "success": True,
        "count": len(products),
        "products": [products_service.product_to_dict(p) for p in products],
    }


@router.get("/filterProduct")
async def filter_products(
    name: str | None = Query(None),
    price: float | None = Query(None),
    category: str | None = Query(None),
):
    products = await products_service.filter_products(name=name, price=price, category=category)
    return {
        "success": True,
        "message": "product is filtered successfully",
        "count": len(products),
        "products": [products_service.product_to_dict(p) for p in products],
    }


@router.delete("/delete/{product_id}")
async def delete_product(
    product_id: str,
    user: User = Depends(get_current_user),
    storage: StorageBackend = Depends(get_storage),
):
    await products_service.delete_product(object_id(product_id, "product id"), user, storage=storage)
    return {"success": True, "message": "Successfully deleted Product"}
