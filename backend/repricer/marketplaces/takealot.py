from repricer.marketplaces.base import HttpMarketplaceAdapter


class TakealotAdapter(HttpMarketplaceAdapter):
    marketplace_id = "takealot"

    def __init__(self, base_url: str, api_key: str, **kwargs):
        super().__init__(
            base_url=base_url,
            headers={
                "Authorization": f"Key {api_key}",
                "Accept": "application/json",
            },
            **kwargs,
        )

    async def get_product_by_id(self, product_id: str) -> dict:
        r = await self._request("GET", f"/offers/offer/{product_id}")
        offer = r.json()
        price = offer.get("selling_price")
        if price is None:
            return {"success": False, "data": None, "error": "Offer has no price"}
        return {
            "success": True,
            "data": {
                "price": float(price),
                "metadata": {
                    "offer_id": offer.get("offer_id"),
                    "tsin_id": offer.get("tsin_id"),
                    "status": offer.get("status"),
                    "leadtime_days": offer.get("leadtime_days"),
                },
            },
        }

    async def get_offers(self, product_id: str) -> list[dict]:
        r = await self._request("GET", f"/offers/offer/{product_id}/competitors")
        return list(r.json().get("offers") or [])

    async def update_prices(self, updates: list[dict]) -> dict:
        payload = {
            "requests": [
                {"sku": u["sku"], "selling_price": round(float(u["price"]), 2)}
                for u in updates
            ]
        }
        r = await self._request("POST", "/offers/batch", json=payload)
        results = r.json().get("results") or []

        failed = [
            {"sku": res.get("sku"), "reason": res.get("error") or "Rejected"}
            for res in results
            if str(res.get("status", "")).lower() != "success"
        ]
        return {"success": not failed, "data": {"failed": failed}}
