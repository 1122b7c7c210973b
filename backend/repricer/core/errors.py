class RepricerError(Exception):
    """Base error for the Buy Box / repricing service."""


class NotFoundError(RepricerError):
    pass


class RuleNotFoundError(NotFoundError):
    def __init__(self, rule_id: int):
        super().__init__(f"Repricing rule {rule_id} not found")
        self.rule_id = rule_id


class HistoryNotFoundError(NotFoundError):
    def __init__(self, product_id: str, marketplace_id: str):
        super().__init__(
            f"No Buy Box history found for {product_id} on {marketplace_id}"
        )
        self.product_id = product_id
        self.marketplace_id = marketplace_id


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class MarketplaceListingNotFoundError(NotFoundError):
    def __init__(self, sku: str, marketplace_id: str):
        super().__init__(f"No {marketplace_id} listing found for product {sku}")
        self.sku = sku
        self.marketplace_id = marketplace_id


class UnsupportedMarketplaceError(RepricerError):
    def __init__(self, marketplace_id: str):
        super().__init__(
            f"Marketplace not supported for Buy Box monitoring: {marketplace_id}"
        )
        self.marketplace_id = marketplace_id


class InsufficientCreditsError(RepricerError):
    def __init__(self, org_id: str, amount: int):
        super().__init__(f"Organization {org_id} has fewer than {amount} credits")
        self.org_id = org_id
        self.amount = amount


class MarketplaceAdapterError(RepricerError):
    pass
