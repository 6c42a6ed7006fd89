import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


class ApiError(Exception):
    """The storefront API answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str, reason: Optional[str] = None, detail: Any = None):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.reason = reason
        self.detail = detail


class ApiTransportError(Exception):
    """No usable answer: connection failure, timeout or an unreadable body."""

    def __init__(self, message: str, *, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _error_from_response(response: httpx.Response) -> ApiError:
    try:
        body = response.json()
    except ValueError:
        body = {"message": response.text}

    detail = body.get("detail", body) if isinstance(body, dict) else body
    reason = None
    message = None
    if isinstance(detail, dict):
        reason = detail.get("reason") or detail.get("code")
        message = detail.get("message") or detail.get("error")
    elif isinstance(detail, str):
        message = detail
    elif isinstance(detail, list) and detail:
        # request validation errors
        message = "; ".join(str(d.get("msg", d)) if isinstance(d, dict) else str(d) for d in detail)

    return ApiError(response.status_code, message or f"HTTP {response.status_code}", reason, detail)


class StorefrontClient:
    """
    Async client for the storefront checkout API.

    Usage::

        async with StorefrontClient("https://api.example.com", token=jwt) as client:
            addresses = await client.list_addresses(customer_id=7)
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json", "User-Agent": "storefront-checkout/1.0"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "StorefrontClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                path,
                json=_jsonable(json) if json is not None else None,
                params=_jsonable(params) if params else None,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out: {e}")
            raise ApiTransportError(f"{method} {path} timed out", timed_out=True) from e
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} transport error: {e}")
            raise ApiTransportError(f"{method} {path} failed: {e}") from e
        except httpx.HTTPError as e:
            # undecodable bodies, redirect loops
            logger.warning(f"{method} {path} unusable response: {e!r}")
            raise ApiTransportError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.info(f"{method} {path} -> {response.status_code} ({error.reason or error.message})")
            raise error

        try:
            return response.json()
        except ValueError as e:
            raise ApiTransportError(f"{method} {path} returned an unreadable body") from e

    async def list_addresses(self, customer_id: int) -> List[dict]:
        return await self._request("GET", "/addresses", params={"customerId": customer_id})

    async def list_active_partners(self) -> List[dict]:
        return await self._request("GET", "/partners/active")

    async def preview_shipping(
        self,
        items_subtotal: Decimal,
        state_id: Optional[int],
        district_id: Optional[int],
    ) -> dict:
        return await self._request(
            "POST",
            "/shipping/preview",
            json={"itemsSubtotal": items_subtotal, "stateId": state_id, "districtId": district_id},
        )

    async def preview_coupon(
        self,
        code: str,
        customer_id: Optional[int],
        order_total: Decimal,
        items_count: int,
    ) -> dict:
        return await self._request(
            "POST",
            f"/coupons/{quote(code, safe='')}/preview",
            json={"customerId": customer_id, "orderTotal": order_total, "itemsCount": items_count},
        )

    async def start_checkout(self, order: dict, items: List[dict], idempotency_key: Optional[str] = None) -> dict:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        return await self._request("POST", "/checkout", json={"order": order, "items": items}, headers=headers)

    async def verify_payment(self, payload: dict) -> dict:
        return await self._request("POST", "/payments/verify", json=payload)
