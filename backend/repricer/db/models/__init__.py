from repricer.db.base import Base
from repricer.db.models.inventory_item import InventoryItem
from repricer.db.models.buybox_history import BuyBoxHistory, history_key
from repricer.db.models.buybox_snapshot import BuyBoxSnapshotRecord
from repricer.db.models.repricing_rule import RepricingRule
from repricer.db.models.repricing_event import RepricingEvent
from repricer.db.models.credit import CreditAccount, CreditTransaction

__all__ = [
    "Base",
    "InventoryItem",
    "BuyBoxHistory",
    "BuyBoxSnapshotRecord",
    "RepricingRule",
    "RepricingEvent",
    "CreditAccount",
    "CreditTransaction",
    "history_key",
]
