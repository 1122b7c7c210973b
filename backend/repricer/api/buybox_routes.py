from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from repricer.api.deps import get_monitoring_service, get_repricing_engine
from repricer.api.schemas.buybox import (
    ApplyRulesIn,
    BulkMonitoringIn,
    BuyBoxCheckIn,
    HistoryOut,
    InitializeMonitoringIn,
)
from repricer.core.auth import get_current_user, get_org_id
from repricer.core.errors import HistoryNotFoundError, ProductNotFoundError
from repricer.db.models import BuyBoxHistory, InventoryItem
from repricer.db.session import get_db
from repricer.repositories.buybox_history import BuyBoxHistoryRepository
from repricer.repositories.inventory import InventoryRepository
from repricer.services.monitor import BuyBoxMonitoringService
from repricer.services.repricing_engine import RepricingEngine

router = APIRouter(prefix="/api/buybox", tags=["buybox"])


def _product_for_org(db: Session, product_id: str, org_id: str) -> InventoryItem:
    product = InventoryRepository(db).get_inventory_item_by_id(product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    if product.org_id != org_id:
        raise HTTPException(status_code=403, detail="Access denied to this product")
    return product


def _history_for_org(
    db: Session, product_id: str, marketplace_id: str, org_id: str
) -> BuyBoxHistory:
    history = BuyBoxHistoryRepository(db).get(product_id, marketplace_id)
    if history is None:
        raise HistoryNotFoundError(product_id, marketplace_id)
    if history.org_id != org_id:
        raise HTTPException(status_code=403, detail="Access denied to this history")
    return history


@router.post("/monitoring", status_code=201)
async def initialize_monitoring(
    payload: InitializeMonitoringIn,
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: BuyBoxMonitoringService = Depends(get_monitoring_service),
):
    _product_for_org(db, payload.product_id, org_id)
    history = await service.initialize_monitoring(
        payload.product_id,
        payload.marketplace_id,
        payload.marketplace_product_id,
        payload.monitoring_frequency,
    )
    return {"success": True, "data": HistoryOut.from_history(history).model_dump(mode="json")}


@router.delete("/monitoring/{product_id}/{marketplace_id}")
def stop_monitoring(
    product_id: str,
    marketplace_id: str,
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: BuyBoxMonitoringService = Depends(get_monitoring_service),
):
    _history_for_org(db, product_id, marketplace_id, org_id)
    if not service.stop_monitoring(product_id, marketplace_id):
        raise HTTPException(status_code=500, detail="Failed to stop monitoring")
    return {"success": True, "message": "Monitoring stopped"}


@router.post("/monitoring/marketplace")
async def initialize_marketplace_monitoring(
    payload: BulkMonitoringIn,
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    service: BuyBoxMonitoringService = Depends(get_monitoring_service),
):
    count = await service.initialize_monitoring_for_marketplace(
        org_id, payload.marketplace_id, payload.monitoring_frequency
    )
    return {"success": True, "data": {"initialized": count}}


@router.post("/check")
async def check_buybox(
    payload: BuyBoxCheckIn,
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: BuyBoxMonitoringService = Depends(get_monitoring_service),
):
    product = _product_for_org(db, payload.product_id, org_id)
    snapshot = await service.check_buybox_status(
        payload.product_id,
        payload.marketplace_id,
        payload.marketplace_product_id,
        user_id=product.user_id,
        org_id=org_id,
    )
    return {"success": True, "data": snapshot.to_dict()}


@router.get("/history/{product_id}/{marketplace_id}")
def get_history(
    product_id: str,
    marketplace_id: str,
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    history = _history_for_org(db, product_id, marketplace_id, org_id)
    return {
        "success": True,
        "data": HistoryOut.from_history(history, include_snapshots=True).model_dump(
            mode="json"
        ),
    }


@router.get("/marketplaces/{marketplace_id}/histories")
def list_marketplace_histories(
    marketplace_id: str,
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    histories = BuyBoxHistoryRepository(db).get_by_marketplace(
        marketplace_id, org_id=org_id, limit=limit, offset=offset
    )
    return {
        "success": True,
        "data": [HistoryOut.from_history(h).model_dump(mode="json") for h in histories],
    }


@router.post("/repricing/apply")
async def apply_repricing_rules(
    payload: ApplyRulesIn,
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    engine: RepricingEngine = Depends(get_repricing_engine),
):
    _history_for_org(db, payload.product_id, payload.marketplace_id, org_id)
    count = await engine.apply_rules(
        payload.product_id, payload.marketplace_id, payload.rule_ids
    )
    return {
        "success": True,
        "message": f"Repricing rules applied to {count} products",
        "data": {"count": count},
    }
