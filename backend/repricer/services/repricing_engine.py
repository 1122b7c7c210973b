"""
Scheduled and manual execution of repricing rules.

One tick walks every due rule, organization by organization. Within an
organization the rules run in descending priority and a product+marketplace
repriced by one rule is skipped by every lower-priority rule in the same tick.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime

import structlog
from sqlalchemy.orm import Session

from repricer.core.config import Settings, settings as default_settings
from repricer.core.errors import (
    HistoryNotFoundError,
    InsufficientCreditsError,
    RuleNotFoundError,
)
from repricer.core.pricing import utcnow
from repricer.db.models import BuyBoxHistory, RepricingEvent, RepricingRule
from repricer.marketplaces.factory import AdapterFactory
from repricer.models.buybox import BuyBoxOwnershipStatus
from repricer.models.repricing import ExecutionSummary
from repricer.monitors.factory import MonitorFactory
from repricer.repositories.buybox_history import BuyBoxHistoryRepository
from repricer.repositories.inventory import InventoryRepository
from repricer.repositories.repricing_event import RepricingEventRepository
from repricer.repositories.repricing_rule import RepricingRuleRepository
from repricer.services.credits import CreditService
from repricer.services.rule_evaluator import evaluate_rule

logger = structlog.get_logger(__name__)


def repriced_key(history: BuyBoxHistory) -> tuple[str, str]:
    return (history.product_id, history.marketplace_id)


class RepricingEngine:
    def __init__(
        self,
        db: Session,
        adapters: AdapterFactory,
        monitors: MonitorFactory,
        credits: CreditService,
        config: Settings | None = None,
    ):
        self.db = db
        self.rules = RepricingRuleRepository(db)
        self.histories = BuyBoxHistoryRepository(db)
        self.events = RepricingEventRepository(db)
        self.inventory = InventoryRepository(db)
        self.adapters = adapters
        self.monitors = monitors
        self.credits = credits
        self.config = config or default_settings

    # -------------------------
    # Tick
    # -------------------------

    async def process_due_rules(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        due = self.rules.find_due(now)
        if not due:
            logger.debug("repricing.no_due_rules")
            return 0

        by_org: dict[str, list[RepricingRule]] = defaultdict(list)
        for rule in due:
            by_org[rule.org_id].append(rule)

        logger.info("repricing.tick", due_rules=len(due), organizations=len(by_org))

        updates = 0
        for org_id, rules in by_org.items():
            try:
                updates += await self._process_org(org_id, rules, now)
            except Exception:
                logger.exception("repricing.org_failed", org_id=org_id)
                self.db.rollback()
        return updates

    async def _process_org(
        self, org_id: str, rules: list[RepricingRule], now: datetime
    ) -> int:
        histories = self.histories.get_by_org(org_id)

        worst_case = len(histories) * self.config.PRICE_UPDATE_CREDIT_COST
        if worst_case > 0 and not self.credits.has_available_credits(org_id, worst_case):
            logger.warning(
                "repricing.insufficient_credits",
                org_id=org_id,
                required=worst_case,
                rules=len(rules),
            )
            return 0

        repriced: set[tuple[str, str]] = set()
        processed: list[RepricingRule] = []
        updates = 0

        for rule in sorted(rules, key=lambda r: r.priority, reverse=True):
            try:
                updates += await self._process_rule(rule, histories, repriced)
                processed.append(rule)
            except Exception:
                logger.exception("repricing.rule_failed", rule_id=rule.id, org_id=org_id)
                self.db.rollback()

        for rule in processed:
            rule.advance_schedule(now)
        self.rules.save_all(processed)
        return updates

    # -------------------------
    # Per rule
    # -------------------------

    def _eligible(
        self,
        rule: RepricingRule,
        histories: list[BuyBoxHistory],
        repriced: set[tuple[str, str]],
    ) -> list[BuyBoxHistory]:
        marketplaces = set(rule.marketplaces or [])
        product_filter = rule.filter

        eligible = []
        for history in histories:
            if history.marketplace_id not in marketplaces:
                continue
            if repriced_key(history) in repriced:
                continue
            product = self.inventory.get_inventory_item_by_id(history.product_id)
            snapshot = history.last_snapshot
            if not product_filter.matches(
                history.sku,
                getattr(product, "category", None),
                snapshot.own_price if snapshot is not None else None,
            ):
                continue
            eligible.append(history)
        return eligible

    async def _process_rule(
        self,
        rule: RepricingRule,
        histories: list[BuyBoxHistory],
        repriced: set[tuple[str, str]],
    ) -> int:
        eligible = self._eligible(rule, histories, repriced)
        if not eligible:
            logger.debug("repricing.rule_no_products", rule_id=rule.id)
            return 0

        groups: dict[tuple[str, str | None], list[BuyBoxHistory]] = defaultdict(list)
        for history in eligible:
            groups[(history.marketplace_id, history.user_id)].append(history)

        updates = 0
        for (marketplace_id, user_id), group in groups.items():
            try:
                updates += await self._process_group(
                    rule, marketplace_id, user_id, group, repriced
                )
            except Exception:
                logger.exception(
                    "repricing.marketplace_failed",
                    rule_id=rule.id,
                    marketplace=marketplace_id,
                )
                self.db.rollback()
        return updates

    async def _process_group(
        self,
        rule: RepricingRule,
        marketplace_id: str,
        user_id: str | None,
        histories: list[BuyBoxHistory],
        repriced: set[tuple[str, str]],
    ) -> int:
        adapter = self.adapters.get_adapter(marketplace_id, user_id, rule.org_id)
        monitor = self.monitors.get_monitor(marketplace_id, user_id, rule.org_id)
        params = rule.rule_parameters

        batch: list[dict] = []
        pending: list[tuple[BuyBoxHistory, RepricingEvent]] = []

        for history in histories:
            try:
                snapshot = history.last_snapshot
                product = self.inventory.get_inventory_item_by_id(history.product_id)
                decision = await evaluate_rule(
                    rule.strategy,
                    params,
                    snapshot,
                    product=product,
                    monitor=monitor,
                    cost_ratio=self.config.ASSUMED_COST_RATIO,
                )
            except Exception:
                logger.exception(
                    "repricing.product_failed",
                    rule_id=rule.id,
                    product_id=history.product_id,
                    marketplace=marketplace_id,
                )
                continue

            if not decision.should_update:
                logger.debug(
                    "repricing.no_update",
                    rule_id=rule.id,
                    sku=history.sku,
                    reason=decision.reason,
                )
                continue

            batch.append({"sku": history.marketplace_product_id, "price": decision.new_price})
            pending.append(
                (
                    history,
                    RepricingEvent(
                        rule_id=rule.id,
                        org_id=rule.org_id,
                        product_id=history.product_id,
                        sku=history.sku,
                        marketplace_id=marketplace_id,
                        previous_price=snapshot.own_price,
                        new_price=decision.new_price,
                        reason=decision.reason,
                        buybox_status_before=(
                            snapshot.status.value
                            if snapshot
                            else BuyBoxOwnershipStatus.UNKNOWN.value
                        ),
                        success=False,
                    ),
                )
            )

        if not batch:
            return 0

        cost = len(batch) * self.config.PRICE_UPDATE_CREDIT_COST
        try:
            self.credits.use_credits(
                rule.org_id,
                cost,
                f"Repricing rule '{rule.name}' on {marketplace_id}",
                reference_id=f"rule:{rule.id}",
            )
        except InsufficientCreditsError:
            logger.warning(
                "repricing.insufficient_credits",
                org_id=rule.org_id,
                rule_id=rule.id,
                marketplace=marketplace_id,
                required=cost,
            )
            return 0

        failed, batch_error = await self._submit(adapter, batch)
        logger.info(
            "repricing.batch_submitted",
            rule_id=rule.id,
            marketplace=marketplace_id,
            size=len(batch),
            failed=len(failed) if batch_error is None else len(batch),
        )

        now = utcnow()
        events = []
        updates = 0
        for history, event in pending:
            event.timestamp = now
            if batch_error is not None:
                event.error_message = batch_error
            elif history.marketplace_product_id in failed:
                event.error_message = failed[history.marketplace_product_id]
            else:
                event.success = True
                updates += 1
                self._record_listing_price(history, event.new_price)
            events.append(event)
            repriced.add(repriced_key(history))

        self.events.create_many(events)
        return updates

    async def _submit(self, adapter, batch: list[dict]) -> tuple[dict[str, str], str | None]:
        """
        Push a batch and return (per-SKU failures, whole-batch error).
        """
        try:
            result = await adapter.update_prices(batch)
        except Exception as e:
            logger.exception("repricing.batch_failed", size=len(batch))
            return {}, f"Error updating prices: {e}"

        failed = {
            f.get("sku"): f.get("reason") or "Unknown error"
            for f in (result.get("data") or {}).get("failed") or []
        }
        if not result.get("success") and not failed:
            return {}, result.get("message") or "Unknown error"
        return failed, None

    def _record_listing_price(self, history: BuyBoxHistory, price: float) -> None:
        product = self.inventory.get_inventory_item_by_id(history.product_id)
        if product is None:
            return
        listing = product.listing_for(history.marketplace_id)
        if listing is None:
            return
        product.marketplaces = {
            **product.marketplaces,
            history.marketplace_id: {**listing, "price": price},
        }

    # -------------------------
    # Manual
    # -------------------------

    async def execute_rule_manually(
        self, rule_id: int, now: datetime | None = None
    ) -> ExecutionSummary:
        rule = self.rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)

        now = now or utcnow()
        try:
            histories = self.histories.get_by_org(rule.org_id)
            updates = await self._process_rule(rule, histories, set())
        except Exception as e:
            logger.exception("repricing.manual_failed", rule_id=rule_id)
            self.db.rollback()
            return ExecutionSummary(
                success=False, message=f"Error executing rule: {e}", updates=0
            )

        rule.last_run_at = now
        self.rules.save_all([rule])
        logger.info("repricing.manual_executed", rule_id=rule_id, updates=updates)
        return ExecutionSummary(
            success=True,
            message=f"Rule executed with {updates} price updates",
            updates=updates,
        )

    # -------------------------
    # On demand
    # -------------------------

    async def apply_rules(
        self,
        product_id: str,
        marketplace_id: str,
        rule_ids: list[int] | None = None,
    ) -> int:
        """
        Run rules against one monitored product on one marketplace right away.

        Without ``rule_ids`` every active rule of the product's organization is
        tried. Rules run in descending priority and the first rule that submits
        a price claims the product, as in a scheduled tick. Rule schedules are
        left untouched. Returns the number of products repriced.
        """
        history = self.histories.get(product_id, marketplace_id)
        if history is None:
            raise HistoryNotFoundError(product_id, marketplace_id)

        if rule_ids:
            rules = []
            for rule_id in dict.fromkeys(rule_ids):
                rule = self.rules.get(rule_id)
                if rule is None or rule.org_id != history.org_id:
                    raise RuleNotFoundError(rule_id)
                rules.append(rule)
        else:
            rules = [r for r in self.rules.find_by_org(history.org_id) if r.is_active]

        if not rules:
            logger.info(
                "repricing.apply_no_rules", product_id=product_id, marketplace=marketplace_id
            )
            return 0

        cost = self.config.PRICE_UPDATE_CREDIT_COST
        if not self.credits.has_available_credits(history.org_id, cost):
            raise InsufficientCreditsError(history.org_id, cost)

        repriced: set[tuple[str, str]] = set()
        updates = 0
        for rule in sorted(rules, key=lambda r: r.priority, reverse=True):
            try:
                updates += await self._process_rule(rule, [history], repriced)
            except Exception:
                logger.exception(
                    "repricing.rule_failed", rule_id=rule.id, org_id=history.org_id
                )
                self.db.rollback()

        logger.info(
            "repricing.rules_applied",
            product_id=product_id,
            marketplace=marketplace_id,
            rules=len(rules),
            updates=updates,
        )
        return updates
