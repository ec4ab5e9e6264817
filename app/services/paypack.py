"""PayPack API client: cached access token, cash-in requests, transaction lookups.

Provider payloads carry two references: ours (``tx_ref``, also seen as
``transactionId``, ``transaction_id`` or ``reference``) and PayPack's own
``ref``, sometimes nested under ``data``. Everything leaving this module is a
``ProviderTransaction`` so callers never branch on provider field names.
"""

import asyncio
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable

import httpx
from pydantic import BaseModel, Field

from app.core.exceptions import GatewayAuthError, GatewayAuthExpired, GatewayError
from app.core.logging import get_logger

log = get_logger(__name__)

TOKEN_SAFETY_MARGIN_SECONDS = 300

AUTH_PATH = "/auth/token"
CASHIN_PATH = "/collection/request"
TRANSACTION_PATH = "/transactions/{reference}"

# merchant reference keys, most specific first
_REFERENCE_KEYS = ("tx_ref", "transactionId", "transaction_id", "reference")
_PROVIDER_REFERENCE_KEY = "ref"
_TOKEN_KEYS = ("access_token", "access", "token")
_EXPIRY_KEYS = ("expires_in", "expires")


class ProviderTransaction(BaseModel):
    reference: str | None = None  # ours; falls back to PayPack's ref when absent
    provider_reference: str | None = None
    status: str | None = None
    amount: float | None = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def references(self) -> tuple[str, ...]:
        """Distinct non-empty references, merchant first."""
        return tuple(dict.fromkeys(r for r in (self.reference, self.provider_reference) if r))


def _first(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def parse_transaction(payload: Any) -> ProviderTransaction:
    """Normalize a provider response or webhook body into a ProviderTransaction."""
    if not isinstance(payload, dict):
        return ProviderTransaction(reference=None, status=None, raw={"body": payload})
    inner = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    provider_reference = _first(inner, (_PROVIDER_REFERENCE_KEY,)) or _first(payload, (_PROVIDER_REFERENCE_KEY,))
    reference = _first(inner, _REFERENCE_KEYS) or _first(payload, _REFERENCE_KEYS) or provider_reference
    status = _first(inner, ("status",)) or _first(payload, ("status",))
    amount = _first(inner, ("amount",)) or _first(payload, ("amount",))
    try:
        amount = float(amount) if amount is not None else None
    except (TypeError, ValueError):
        amount = None
    return ProviderTransaction(
        reference=str(reference) if reference is not None else None,
        provider_reference=str(provider_reference) if provider_reference is not None else None,
        status=str(status) if status is not None else None,
        amount=amount,
        raw=payload,
    )


def round_amount(amount: float | int | Decimal) -> int:
    """Whole currency units, half-up; PayPack rejects fractional RWF."""
    value = Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    if value < 0:
        raise ValueError("amount must be non-negative")
    return int(value)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:2000]


class TokenCache:
    """Holds one provider bearer token until shortly before it expires."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        *,
        default_ttl: int = 3600,
        safety_margin: int = TOKEN_SAFETY_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._http = http
        self._client_id = client_id
        self._client_secret = client_secret
        self._default_ttl = default_ttl
        self._safety_margin = safety_margin
        self._clock = clock
        self._lock = asyncio.Lock()
        self.token: str | None = None
        self.expires_at: float = 0.0

    def _valid(self) -> bool:
        return self.token is not None and self._clock() < self.expires_at

    def invalidate(self) -> None:
        self.token = None
        self.expires_at = 0.0

    async def get_token(self) -> str:
        if self._valid():
            return self.token
        async with self._lock:
            # another caller may have refreshed while we waited
            if self._valid():
                return self.token
            return await self._refresh()

    async def _refresh(self) -> str:
        if not self._client_id or not self._client_secret:
            self.invalidate()
            raise GatewayAuthError("Payment provider credentials not configured")
        try:
            response = await self._http.post(
                AUTH_PATH,
                json={"client_id": self._client_id, "client_secret": self._client_secret},
            )
        except httpx.HTTPError as e:
            self.invalidate()
            log.warning("paypack_auth_unreachable", error=str(e))
            raise GatewayAuthError(f"Payment provider unreachable: {e.__class__.__name__}") from e

        body = _response_body(response)
        if not response.is_success:
            self.invalidate()
            log.warning("paypack_auth_rejected", upstream_status=response.status_code)
            raise GatewayAuthError(upstream_status=response.status_code, upstream_body=body)

        token = _first(body, _TOKEN_KEYS) if isinstance(body, dict) else None
        if not token:
            self.invalidate()
            raise GatewayAuthError(
                "Payment provider returned no access token",
                upstream_status=response.status_code,
                upstream_body=body,
            )
        try:
            expires_in = int(_first(body, _EXPIRY_KEYS) or self._default_ttl)
        except (TypeError, ValueError):
            expires_in = self._default_ttl

        self.token = str(token)
        self.expires_at = self._clock() + max(expires_in - self._safety_margin, 0)
        log.info("paypack_token_refreshed", expires_in=expires_in)
        return self.token


class PaypackClient:
    """Typed wrapper over the PayPack endpoints the payment flow needs."""

    def __init__(self, http: httpx.AsyncClient, token_cache: TokenCache) -> None:
        self.http = http
        self.tokens = token_cache

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        token = await self.tokens.get_token()
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        try:
            response = await self.http.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            # payment state unknown; verify/webhook resolves it later
            log.warning("paypack_timeout", path=path)
            raise GatewayError("Payment provider timed out") from e
        except httpx.HTTPError as e:
            log.warning("paypack_unreachable", path=path, error=str(e))
            raise GatewayError(f"Payment provider unreachable: {e.__class__.__name__}") from e

        body = _response_body(response)
        if response.status_code == 401:
            self.tokens.invalidate()
            raise GatewayAuthExpired(upstream_body=body)
        if not response.is_success:
            log.warning("paypack_error", path=path, upstream_status=response.status_code)
            raise GatewayError(upstream_status=response.status_code, upstream_body=body)
        if not isinstance(body, dict):
            raise GatewayError(
                "Payment provider returned an unexpected response",
                upstream_status=response.status_code,
                upstream_body=body,
            )
        return body

    async def initiate_payment(
        self,
        amount: float | int,
        phone: str,
        reference: str,
        callback_url: str,
    ) -> ProviderTransaction:
        body = await self._request(
            "POST",
            CASHIN_PATH,
            json={
                "amount": round_amount(amount),
                "phone": phone,
                "tx_ref": reference,
                "callback_url": callback_url,
            },
        )
        ack = parse_transaction(body)
        if ack.reference is None:
            ack.reference = reference
        return ack

    async def query_transaction(self, reference: str) -> ProviderTransaction:
        body = await self._request("GET", TRANSACTION_PATH.format(reference=reference))
        tx = parse_transaction(body)
        if tx.reference is None:
            tx.reference = reference
        return tx

    async def aclose(self) -> None:
        await self.http.aclose()


def build_paypack_client(settings) -> PaypackClient:
    http = httpx.AsyncClient(
        base_url=settings.paypack_base_url,
        timeout=httpx.Timeout(settings.paypack_timeout_seconds),
    )
    cache = TokenCache(
        http,
        settings.paypack_client_id,
        settings.paypack_client_secret,
        default_ttl=settings.paypack_default_token_ttl,
    )
    return PaypackClient(http, cache)
