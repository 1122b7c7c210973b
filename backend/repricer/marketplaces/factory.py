from repricer.core.config import Settings, settings as default_settings
from repricer.core.errors import UnsupportedMarketplaceError
from repricer.marketplaces.amazon import AmazonAdapter
from repricer.marketplaces.base import MarketplaceAdapter
from repricer.marketplaces.takealot import TakealotAdapter

SUPPORTED_MARKETPLACES = ("takealot", "amazon")


class AdapterFactory:
    """
    Builds one adapter per (marketplace, user, org) and reuses it.
    """

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings
        self._adapters: dict[tuple[str, str | None, str | None], MarketplaceAdapter] = {}

    def get_adapter(
        self, marketplace_id: str, user_id: str | None = None, org_id: str | None = None
    ) -> MarketplaceAdapter:
        key = (marketplace_id, user_id, org_id)
        if key not in self._adapters:
            self._adapters[key] = self._build(marketplace_id)
        return self._adapters[key]

    def _build(self, marketplace_id: str) -> MarketplaceAdapter:
        if marketplace_id == "takealot":
            return TakealotAdapter(
                base_url=self.config.TAKEALOT_API_URL,
                api_key=self.config.TAKEALOT_API_KEY,
            )
        if marketplace_id == "amazon":
            return AmazonAdapter(
                base_url=self.config.AMAZON_SPAPI_URL,
                access_token=self.config.AMAZON_ACCESS_TOKEN,
                seller_id=self.config.AMAZON_SELLER_ID,
                amazon_marketplace_id=self.config.AMAZON_MARKETPLACE_ID,
            )
        raise UnsupportedMarketplaceError(marketplace_id)

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()
        self._adapters.clear()
