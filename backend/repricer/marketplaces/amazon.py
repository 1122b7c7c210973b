from repricer.marketplaces.base import HttpMarketplaceAdapter


class AmazonAdapter(HttpMarketplaceAdapter):
    """SP-API client limited to the pricing and listings calls repricing needs."""

    marketplace_id = "amazon"

    def __init__(
        self,
        base_url: str,
        access_token: str,
        seller_id: str,
        amazon_marketplace_id: str,
        currency: str = "USD",
        **kwargs,
    ):
        super().__init__(
            base_url=base_url,
            headers={
                "x-amz-access-token": access_token,
                "Accept": "application/json",
            },
            **kwargs,
        )
        self.seller_id = seller_id
        self.amazon_marketplace_id = amazon_marketplace_id
        self.currency = currency

    async def get_product_by_id(self, product_id: str) -> dict:
        r = await self._request(
            "GET",
            "/products/pricing/v0/price",
            params={
                "MarketplaceId": self.amazon_marketplace_id,
                "ItemType": "Sku",
                "Skus": product_id,
            },
        )
        payload = r.json().get("payload") or []
        if not payload or payload[0].get("status") != "Success":
            return {"success": False, "data": None, "error": "SKU not found"}

        product = payload[0].get("Product") or {}
        offers = product.get("Offers") or []
        if not offers:
            return {"success": False, "data": None, "error": "SKU has no offer"}

        buying = offers[0].get("BuyingPrice") or {}
        amount = (buying.get("ListingPrice") or {}).get("Amount")
        if amount is None:
            return {"success": False, "data": None, "error": "Offer has no price"}

        return {
            "success": True,
            "data": {
                "price": float(amount),
                "metadata": {
                    "asin": (product.get("Identifiers") or {})
                    .get("MarketplaceASIN", {})
                    .get("ASIN"),
                    "fulfillment_channel": offers[0].get("FulfillmentChannel"),
                },
            },
        }

    async def get_offers(self, product_id: str) -> list[dict]:
        r = await self._request(
            "GET",
            f"/products/pricing/v0/listings/{product_id}/offers",
            params={
                "MarketplaceId": self.amazon_marketplace_id,
                "ItemCondition": "New",
            },
        )
        return list((r.json().get("payload") or {}).get("Offers") or [])

    async def update_prices(self, updates: list[dict]) -> dict:
        # Listings API has no batch price call; one PATCH per SKU
        failed = []
        for u in updates:
            body = {
                "productType": "PRODUCT",
                "patches": [
                    {
                        "op": "replace",
                        "path": "/attributes/purchasable_offer",
                        "value": [
                            {
                                "marketplace_id": self.amazon_marketplace_id,
                                "currency": self.currency,
                                "our_price": [
                                    {
                                        "schedule": [
                                            {"value_with_tax": round(float(u["price"]), 2)}
                                        ]
                                    }
                                ],
                            }
                        ],
                    }
                ],
            }
            try:
                r = await self._request(
                    "PATCH",
                    f"/listings/2021-08-01/items/{self.seller_id}/{u['sku']}",
                    params={"marketplaceIds": self.amazon_marketplace_id},
                    json=body,
                )
            except Exception as e:
                failed.append({"sku": u["sku"], "reason": str(e)})
                continue

            result = r.json()
            if result.get("status") != "ACCEPTED":
                issues = result.get("issues") or []
                reason = issues[0].get("message") if issues else result.get("status")
                failed.append({"sku": u["sku"], "reason": reason or "Rejected"})

        return {"success": not failed, "data": {"failed": failed}}
