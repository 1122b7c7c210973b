from repricer.core.errors import InsufficientCreditsError, UnsupportedMarketplaceError
from repricer.marketplaces.base import MarketplaceAdapter
from repricer.models.buybox import (
    BuyBoxSnapshot,
    PriceUpdateResult,
    SuggestedPrice,
    unknown_snapshot,
)


class FakeAdapter(MarketplaceAdapter):
    def __init__(
        self,
        marketplace_id="takealot",
        price=20.0,
        offers=None,
        failed_skus=None,
        error=None,
    ):
        self.marketplace_id = marketplace_id
        self.price = price
        self.offers = offers or []
        self.failed_skus = failed_skus or {}
        self.error = error
        self.update_calls = []
        self.closed = False

    async def get_product_by_id(self, product_id):
        if self.error:
            raise self.error
        if self.price is None:
            return {"success": False, "data": None}
        return {"success": True, "data": {"price": self.price, "metadata": {}}}

    async def get_offers(self, product_id):
        if self.error:
            raise self.error
        return list(self.offers)

    async def update_prices(self, updates):
        self.update_calls.append(list(updates))
        failed = [
            {"sku": u["sku"], "reason": self.failed_skus[u["sku"]]}
            for u in updates
            if u["sku"] in self.failed_skus
        ]
        return {"success": not failed, "data": {"failed": failed}}

    async def aclose(self):
        self.closed = True


class FakeAdapterFactory:
    def __init__(self, *adapters):
        self.adapters = {a.marketplace_id: a for a in adapters}
        self.requested = []

    def get_adapter(self, marketplace_id, user_id=None, org_id=None):
        self.requested.append((marketplace_id, user_id, org_id))
        if marketplace_id not in self.adapters:
            raise UnsupportedMarketplaceError(marketplace_id)
        return self.adapters[marketplace_id]

    async def aclose(self):
        for adapter in self.adapters.values():
            await adapter.aclose()


class FakeMonitor:
    def __init__(self, marketplace_id="takealot", snapshot=None, suggestion=None):
        self.marketplace_id = marketplace_id
        self.snapshot = snapshot
        self.suggestion = suggestion or SuggestedPrice(19.5, "Undercut the winner")
        self.checked = []
        self.suggested_for = []

    async def check_buybox_status(self, product_id, marketplace_product_id) -> BuyBoxSnapshot:
        self.checked.append((product_id, marketplace_product_id))
        return self.snapshot or unknown_snapshot()

    async def get_competitors(self, product_id, marketplace_product_id):
        return list(self.snapshot.competitors) if self.snapshot else []

    async def calculate_suggested_price(self, product, snapshot) -> SuggestedPrice:
        self.suggested_for.append(snapshot)
        return self.suggestion

    async def update_price(self, product_id, marketplace_product_id, new_price):
        return PriceUpdateResult(success=True, message="ok")


class FakeMonitorFactory:
    def __init__(self, *monitors):
        self.monitors = {m.marketplace_id: m for m in monitors}

    def get_monitor(self, marketplace_id, user_id=None, org_id=None):
        if marketplace_id not in self.monitors:
            raise UnsupportedMarketplaceError(marketplace_id)
        return self.monitors[marketplace_id]


class FakeCredits:
    def __init__(self, available=True):
        self.available = available
        self.checks = []
        self.used = []

    def has_available_credits(self, org_id, amount):
        self.checks.append((org_id, amount))
        return self.available

    def use_credits(self, org_id, amount, description, reference_id=None):
        if not self.available:
            raise InsufficientCreditsError(org_id, amount)
        self.used.append((org_id, amount, reference_id))
        return 0
