"""Product validation, image storage and /product routes."""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from beanie import PydanticObjectId

from app.core.exceptions import BadRequestError, ForbiddenError, UploadError
from app.deps import get_current_user
from app.models.product import ProductImage
from app.models.user import UserRole
from app.services import products as products_service
from app.storage.base import StorageBackend, get_storage
from app.storage.local import LocalStorage
from tests.conftest import API, make_user

VALID = {
    "name": "Irish potatoes",
    "description": "Fresh potatoes from Musanze, 50kg bags",
    "price": "15000",
    "category": "Vegetables",
    "stock": "40",
    "location": "Musanze",
}


class MemoryStorage(StorageBackend):
    def __init__(self):
        self.files = {}

    async def put(self, key, body, content_type=None):
        self.files[key] = body
        return f"https://cdn.test/{key}"

    async def delete(self, key):
        self.files.pop(key, None)


def _product_ns(**kw):
    fields = {"id": PydanticObjectId(), "created_at": datetime(2025, 1, 1), "insert": AsyncMock(), "delete": AsyncMock()}
    fields.update(kw)
    return SimpleNamespace(**fields)


def test_validate_product_accepts_form_strings():
    body = products_service.validate_product(VALID)
    assert body.price == 15000.0
    assert body.stock == 40


def test_validate_product_reports_all_errors():
    with pytest.raises(BadRequestError) as exc:
        products_service.validate_product({**VALID, "name": "ab", "stock": "-1", "price": "0"})
    message = exc.value.message
    assert "name" in message and "stock" in message and "price" in message


def test_price_precision():
    with pytest.raises(BadRequestError):
        products_service.validate_product({**VALID, "price": "10.123"})


@pytest.mark.asyncio
class TestImageUpload:
    async def test_stores_image_under_generated_key(self):
        storage = MemoryStorage()
        stored = await storage.upload_image(b"\x89PNG...", "crop.png", "image/png")
        assert stored.public_id.startswith("products/") and stored.public_id.endswith(".png")
        assert stored.url == f"https://cdn.test/{stored.public_id}"
        assert storage.files[stored.public_id] == b"\x89PNG..."

    async def test_rejects_unsupported_type(self):
        with pytest.raises(UploadError):
            await MemoryStorage().upload_image(b"MZ", "virus.exe", "application/octet-stream")

    async def test_rejects_empty_file(self):
        with pytest.raises(UploadError):
            await MemoryStorage().upload_image(b"", "a.png", "image/png")

    async def test_local_storage_writes_file(self, tmp_path):
        storage = LocalStorage()
        storage.root = tmp_path
        stored = await storage.upload_image(b"jpegdata", "a.jpg", "image/jpeg")
        assert (tmp_path / stored.public_id).read_bytes() == b"jpegdata"
        assert stored.url.endswith(f"/uploads/{stored.public_id}")
        await storage.delete(stored.public_id)
        assert not (tmp_path / stored.public_id).exists()


@pytest.mark.asyncio
class TestDeleteProduct:
    async def test_other_seller_forbidden(self):
        product = _product_ns(seller=make_user(UserRole.SELLER), images=[])
        with patch.object(products_service, "get_product", new=AsyncMock(return_value=product)):
            with pytest.raises(ForbiddenError):
                await products_service.delete_product(product.id, make_user(UserRole.SELLER))
        product.delete.assert_not_awaited()

    async def test_owner_deletes_product_and_images(self):
        seller = make_user(UserRole.SELLER)
        storage = MemoryStorage()
        storage.files["products/a.png"] = b"x"
        product = _product_ns(seller=seller, images=[ProductImage(url="u", public_id="products/a.png")])
        with patch.object(products_service, "get_product", new=AsyncMock(return_value=product)), \
             patch("app.services.products.log_event", new=AsyncMock()):
            await products_service.delete_product(product.id, seller, storage=storage)
        product.delete.assert_awaited_once()
        assert storage.files == {}


def test_add_product_route_with_image(client):
    seller = make_user(UserRole.SELLER)
    storage = MemoryStorage()
    client.app.dependency_overrides[get_current_user] = lambda: seller
    client.app.dependency_overrides[get_storage] = lambda: storage
    with patch("app.services.products.Product", side_effect=lambda **kw: _product_ns(**kw)):
        r = client.post(
            f"{API}/product/add",
            data=VALID,
            files={"image": ("crop.jpg", b"jpegdata", "image/jpeg")},
        )
    assert r.status_code == 201
    product = r.json()["product"]
    assert product["seller_id"] == str(seller.id)
    assert product["price"] == 15000.0
    [image] = product["images"]
    assert image["url"].startswith("https://cdn.test/products/")
    assert len(storage.files) == 1


def test_add_product_route_validation(client):
    client.app.dependency_overrides[get_current_user] = lambda: make_user(UserRole.SELLER)
    client.app.dependency_overrides[get_storage] = lambda: MemoryStorage()
    r = client.post(f"{API}/product/add", data={**VALID, "description": "short"})
    assert r.status_code == 400
    assert "description" in r.json()["message"]


def test_buyer_cannot_add_product(client):
    client.app.dependency_overrides[get_current_user] = lambda: make_user(UserRole.BUYER)
    client.app.dependency_overrides[get_storage] = lambda: MemoryStorage()
    r = client.post(f"{API}/product/add", data=VALID)
    assert r.status_code == 403


def test_get_all_products_is_public(client):
    listed = [_product_ns(
        name="Beans", description="d" * 10, price=900.0, category="Legumes", stock=3,
        location="Huye", seller=make_user(UserRole.SELLER), images=[],
    )]
    with patch.object(products_service, "list_products", new=AsyncMock(return_value=listed)):
        r = client.get(f"{API}/product/getAll")
    assert r.status_code == 200
    assert r.json()["count"] == 1
    assert r.json()["products"][0]["name"] == "Beans"


def test_filter_products_passes_query(client):
    with patch.object(products_service, "filter_products", new=AsyncMock(return_value=[])) as flt:
        r = client.get(f"{API}/product/filterProduct", params={"name": "bean", "category": "Legumes"})
    assert r.status_code == 200
    flt.assert_awaited_once_with(name="bean", price=None, category="Legumes")


@pytest.mark.asyncio
class TestGCSStorage:
    async def test_put_returns_public_url(self):
        from app.storage.gcs import GCSStorage

        with patch("app.storage.gcs.storage.Client") as client_cls:
            bucket = client_cls.return_value.bucket.return_value
            storage = GCSStorage()
            url = await storage.put("products/a.png", b"png", "image/png")
        assert url == "https://storage.googleapis.com/agritech-uploads/products/a.png"
        bucket.blob.return_value.upload_from_string.assert_called_once_with(b"png", content_type="image/png")

    async def test_put_wraps_api_errors(self):
        from google.api_core import exceptions as gcs_exceptions

        from app.storage.gcs import GCSStorage

        with patch("app.storage.gcs.storage.Client") as client_cls:
            blob = client_cls.return_value.bucket.return_value.blob.return_value
            blob.upload_from_string.side_effect = gcs_exceptions.Forbidden("denied")
            with pytest.raises(UploadError):
                await GCSStorage().put("products/a.png", b"png", "image/png")
