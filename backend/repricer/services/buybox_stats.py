"""
Rolling Buy Box statistics over a history's snapshot series.

All figures are computed from the snapshots that fall inside the trailing
window ending at a reference instant (normally the snapshot just added).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from repricer.core.pricing import ensure_utc, round_price
from repricer.models.buybox import BuyBoxOwnershipStatus, BuyBoxSnapshot

WINDOW_DAYS = 30

TRANSITION_REASON = "Price change or competitor changes"


@dataclass
class WindowStats:
    sample_size: int
    win_percentage: Optional[float]
    average_price_difference: Optional[float]
    lowest_price_to_win: Optional[float]


def in_window(
    snapshots: Iterable[BuyBoxSnapshot], reference: datetime, days: int = WINDOW_DAYS
) -> list[BuyBoxSnapshot]:
    reference = ensure_utc(reference)
    since = reference - timedelta(days=days)
    return [
        s for s in snapshots if since <= ensure_utc(s.captured_at) <= reference
    ]


def compute_window_stats(
    snapshots: Iterable[BuyBoxSnapshot], reference: datetime, days: int = WINDOW_DAYS
) -> WindowStats:
    recent = in_window(snapshots, reference, days)
    if not recent:
        return WindowStats(0, None, None, None)

    wins = [s for s in recent if s.is_winning]
    win_percentage = len(wins) / len(recent) * 100.0

    priced = [
        s
        for s in recent
        if s.buybox_price is not None and s.buybox_price > 0 and s.own_price > 0
    ]

    average_difference = None
    lowest_to_win = None
    if priced:
        differences = [s.buybox_price - s.own_price for s in priced]
        average_difference = sum(differences) / len(differences)

        owned = [s for s in priced if s.status == BuyBoxOwnershipStatus.OWNED]
        if owned:
            # smallest margin over the Buy Box price that still won
            lowest_winning_margin = min(s.own_price - s.buybox_price for s in owned)
            highest_buybox = max(s.buybox_price for s in priced)
            lowest_to_win = round_price(highest_buybox - abs(lowest_winning_margin))

    return WindowStats(
        sample_size=len(recent),
        win_percentage=win_percentage,
        average_price_difference=average_difference,
        lowest_price_to_win=lowest_to_win,
    )


def transition_marker(
    previous: BuyBoxSnapshot | None, current: BuyBoxSnapshot
) -> tuple[str, dict] | None:
    """
    Returns ("win" | "loss", marker) when ownership flipped between polls.
    """
    if previous is None or previous.status == current.status:
        return None

    marker = {
        "timestamp": ensure_utc(current.captured_at).isoformat(),
        "reason": TRANSITION_REASON,
        "previous_price": previous.own_price,
        "competitor_price": current.buybox_price,
    }
    if current.status == BuyBoxOwnershipStatus.OWNED:
        return "win", marker
    if previous.status == BuyBoxOwnershipStatus.OWNED:
        return "loss", marker
    return None
