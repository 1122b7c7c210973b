from repricer.core.config import Settings, settings as default_settings
from repricer.core.errors import UnsupportedMarketplaceError
from repricer.marketplaces.factory import AdapterFactory
from repricer.monitors.amazon import AmazonBuyBoxMonitor
from repricer.monitors.base import BuyBoxMonitor
from repricer.monitors.takealot import TakealotBuyBoxMonitor


class MonitorFactory:
    def __init__(self, adapters: AdapterFactory, config: Settings | None = None):
        self.adapters = adapters
        self.config = config or default_settings

    def get_monitor(
        self, marketplace_id: str, user_id: str | None = None, org_id: str | None = None
    ) -> BuyBoxMonitor:
        adapter = self.adapters.get_adapter(marketplace_id, user_id, org_id)
        if marketplace_id == "takealot":
            return TakealotBuyBoxMonitor(adapter, seller_name=self.config.TAKEALOT_SELLER_NAME)
        if marketplace_id == "amazon":
            return AmazonBuyBoxMonitor(adapter, seller_id=self.config.AMAZON_SELLER_ID)
        raise UnsupportedMarketplaceError(marketplace_id)
