import asyncio
import os
from abc import ABC, abstractmethod

import httpx
import structlog

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def get_proxy():
    proxy = os.getenv("OUTBOUND_PROXY")
    if not proxy:
        return None
    return proxy


class MarketplaceAdapter(ABC):
    """
    Narrow capability interface the Buy Box engine needs from a marketplace.

    - get_product_by_id -> {"success": bool, "data": {"price": float, "metadata": dict}}
    - get_offers        -> list of raw offer dicts (marketplace-specific shape)
    - update_prices     -> {"success": bool, "data": {"failed": [{"sku", "reason"}]}}
    """

    marketplace_id: str

    @abstractmethod
    async def get_product_by_id(self, product_id: str) -> dict: ...

    @abstractmethod
    async def get_offers(self, product_id: str) -> list[dict]: ...

    @abstractmethod
    async def update_prices(self, updates: list[dict]) -> dict: ...

    async def aclose(self) -> None:
        return None


class HttpMarketplaceAdapter(MarketplaceAdapter):
    def __init__(
        self,
        base_url: str,
        headers: dict,
        timeout: float = 15.0,
        retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.retries = retries
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            proxy=get_proxy() if transport is None else None,
            transport=transport,
        )

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        for attempt in range(self.retries):
            try:
                r = await self._client.request(method, url, **kwargs)
                if r.status_code in RETRYABLE_STATUS and attempt < self.retries - 1:
                    logger.warning(
                        "marketplace.retry",
                        marketplace=self.marketplace_id,
                        url=url,
                        status=r.status_code,
                        attempt=attempt + 1,
                    )
                    await asyncio.sleep(2**attempt)
                    continue
                r.raise_for_status()
                return r
            except (httpx.TransportError, httpx.TimeoutException):
                if attempt == self.retries - 1:
                    raise
                await asyncio.sleep(2**attempt)
        raise RuntimeError("unreachable")

    async def aclose(self) -> None:
        await self._client.aclose()
