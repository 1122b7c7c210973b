from datetime import datetime, timezone

# changes smaller than either threshold are not worth a marketplace call
NOOP_ABSOLUTE = 0.01
NOOP_RELATIVE = 0.005


def round_price(value: float) -> float:
    return round(float(value) + 1e-9, 2)


def is_noop_change(current: float, target: float) -> bool:
    delta = abs(round_price(target) - round_price(current))
    if delta <= NOOP_ABSOLUTE + 1e-9:
        return True
    if current > 0 and delta / current <= NOOP_RELATIVE:
        return True
    return False


def margin_floor(cost: float, margin_percent: float) -> float:
    """
    Lowest price that still yields `margin_percent` gross margin on `cost`.
    """
    if margin_percent >= 100:
        raise ValueError("Target margin must be below 100%")
    return cost / (1 - margin_percent / 100.0)


def clamp(value: float, lower: float | None, upper: float | None) -> float:
    if lower is not None and value < lower:
        value = lower
    if upper is not None and value > upper:
        value = upper
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
