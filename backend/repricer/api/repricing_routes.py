from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from repricer.api.deps import get_credit_service, get_repricing_engine
from repricer.api.schemas.repricing import (
    EventOut,
    ExecutionOut,
    RuleCreate,
    RuleOut,
    RuleStats,
    RuleUpdate,
)
from repricer.core.auth import get_current_user, get_org_id
from repricer.core.config import settings
from repricer.core.errors import InsufficientCreditsError, RuleNotFoundError
from repricer.core.pricing import ensure_utc
from repricer.db.models import RepricingRule
from repricer.db.session import get_db
from repricer.repositories.repricing_event import RepricingEventRepository
from repricer.repositories.repricing_rule import RepricingRuleRepository
from repricer.services.credits import CreditService
from repricer.services.repricing_engine import RepricingEngine

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/repricing", tags=["repricing"])

NULLABLE_RULE_FIELDS = ("description", "product_filter")


def _rule_for_org(db: Session, rule_id: int, org_id: str) -> RepricingRule:
    rule = RepricingRuleRepository(db).get(rule_id)
    if rule is None:
        raise RuleNotFoundError(rule_id)
    if rule.org_id != org_id:
        raise HTTPException(status_code=403, detail="Access denied to this rule")
    return rule


def _events(events) -> list[dict]:
    return [EventOut.model_validate(e).model_dump(mode="json") for e in events]


@router.get("/rules")
def list_rules(
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rules = RepricingRuleRepository(db).find_by_org(org_id)
    return {
        "success": True,
        "data": [RuleOut.model_validate(r).model_dump(mode="json") for r in rules],
    }


@router.get("/rules/{rule_id}")
def get_rule(
    rule_id: int,
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rule = _rule_for_org(db, rule_id, org_id)
    return {"success": True, "data": RuleOut.model_validate(rule).model_dump(mode="json")}


@router.post("/rules", status_code=201)
def create_rule(
    payload: RuleCreate,
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    credits: CreditService = Depends(get_credit_service),
):
    cost = settings.RULE_CREATION_CREDIT_COST
    if not credits.has_available_credits(org_id, cost):
        raise InsufficientCreditsError(org_id, cost)

    repo = RepricingRuleRepository(db)
    rule = repo.create(
        RepricingRule(
            org_id=org_id,
            user_id=user_id,
            name=payload.name,
            description=payload.description,
            is_active=payload.is_active,
            strategy=payload.strategy.value,
            parameters=payload.parameters.model_dump(),
            product_filter=(
                payload.product_filter.model_dump() if payload.product_filter else None
            ),
            marketplaces=payload.marketplaces,
            update_frequency=payload.update_frequency,
            priority=payload.priority,
        )
    )

    try:
        credits.use_credits(
            org_id,
            cost,
            f"Created repricing rule '{rule.name}'",
            reference_id=f"rule:{rule.id}",
        )
    except InsufficientCreditsError:
        repo.delete(rule)
        raise

    logger.info("repricing.rule_created", rule_id=rule.id, org_id=org_id)
    return {"success": True, "data": RuleOut.model_validate(rule).model_dump(mode="json")}


@router.put("/rules/{rule_id}")
def update_rule(
    rule_id: int,
    payload: RuleUpdate,
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rule = _rule_for_org(db, rule_id, org_id)

    changes = {
        k: v
        for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k in NULLABLE_RULE_FIELDS
    }
    if changes.get("strategy") is not None:
        changes["strategy"] = payload.strategy.value
    if "update_frequency" in changes and rule.last_run_at is not None:
        changes["next_run_at"] = ensure_utc(rule.last_run_at) + timedelta(
            minutes=changes["update_frequency"]
        )

    rule = RepricingRuleRepository(db).update(rule, changes)
    logger.info("repricing.rule_updated", rule_id=rule.id, fields=sorted(changes))
    return {"success": True, "data": RuleOut.model_validate(rule).model_dump(mode="json")}


@router.delete("/rules/{rule_id}")
def delete_rule(
    rule_id: int,
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rule = _rule_for_org(db, rule_id, org_id)
    RepricingRuleRepository(db).delete(rule)
    logger.info("repricing.rule_deleted", rule_id=rule_id, org_id=org_id)
    return {"success": True, "message": "Rule deleted"}


@router.post("/rules/{rule_id}/execute")
async def execute_rule(
    rule_id: int,
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    engine: RepricingEngine = Depends(get_repricing_engine),
):
    _rule_for_org(db, rule_id, org_id)
    summary = await engine.execute_rule_manually(rule_id)
    return {
        "success": summary.success,
        "data": ExecutionOut(
            success=summary.success, message=summary.message, updates=summary.updates
        ).model_dump(),
    }


@router.get("/rules/{rule_id}/events")
def rule_events(
    rule_id: int,
    limit: int = Query(100, ge=1, le=500),
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _rule_for_org(db, rule_id, org_id)
    repo = RepricingEventRepository(db)
    return {
        "success": True,
        "data": {
            "events": _events(repo.find_by_rule(rule_id, limit=limit)),
            "stats": RuleStats(**repo.rule_success_rate(rule_id)).model_dump(),
        },
    }


@router.get("/products/{product_id}/events")
def product_events(
    product_id: str,
    limit: int = Query(100, ge=1, le=500),
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    events = RepricingEventRepository(db).find_by_product(
        product_id, org_id=org_id, limit=limit
    )
    return {"success": True, "data": _events(events)}


@router.get("/marketplaces/{marketplace_id}/events")
def marketplace_events(
    marketplace_id: str,
    limit: int = Query(100, ge=1, le=500),
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    events = RepricingEventRepository(db).find_by_marketplace(
        marketplace_id, org_id=org_id, limit=limit
    )
    return {"success": True, "data": _events(events)}


@router.get("/events/recent")
def recent_events(
    limit: int = Query(100, ge=1, le=500),
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    events = RepricingEventRepository(db).find_recent(org_id=org_id, limit=limit)
    return {"success": True, "data": _events(events)}


@router.get("/events/date-range")
def events_by_date_range(
    start: datetime,
    end: datetime,
    limit: int = Query(500, ge=1, le=500),
    org_id: str = Depends(get_org_id),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    start, end = ensure_utc(start), ensure_utc(end)
    if start > end:
        raise HTTPException(status_code=400, detail="start must be before end")
    events = RepricingEventRepository(db).find_by_date_range(
        start, end, org_id=org_id, limit=limit
    )
    return {"success": True, "data": _events(events)}
