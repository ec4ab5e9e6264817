import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import get_settings
from app.core.logging import get_logger
from app.models.activity import ActivityLog
from app.models.order import Order
from app.models.product import Product
from app.models.user import User

log = get_logger(__name__)

# Order links User and Product, so all three register together
DOCUMENT_MODELS = [User, Product, Order, ActivityLog]

_client: AsyncIOMotorClient | None = None


def _use_tls(uri: str) -> bool:
    """True for Atlas SRV URIs or an explicit tls=true; plain mongodb:// in CI stays unencrypted."""
    return uri.startswith("mongodb+srv://") or "tls=true" in uri.lower()


async def init_db() -> None:
    global _client
    settings = get_settings()
    kwargs = {"uuidRepresentation": "standard"}
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
    _client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    await init_beanie(database=_client[settings.mongodb_db_name], document_models=DOCUMENT_MODELS)
    log.info("db_ready", database=settings.mongodb_db_name, collections=len(DOCUMENT_MODELS))


def close_db() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
