from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from dateparser import parse as parse_date

BOOKING_TRANSITIONS = {
    "reserved": ("checked-in", "cancelled", "no-show"),
    "checked-in": ("checked-out",),
    "checked-out": (),
    "cancelled": (),
    "no-show": (),
}

MAINTENANCE_TRANSITIONS = {
    "open": ("assigned", "cancelled"),
    "assigned": ("in-progress", "cancelled"),
    "in-progress": ("completed", "cancelled"),
    "completed": (),
    "cancelled": (),
}

# hours allowed before a request counts as overdue
SLA_HOURS = {"urgent": 1, "high": 4, "medium": 24, "low": 72}

WEEKEND_RATE = Decimal("1.25")
SEASONAL_RATES = {
    1: Decimal("1.0"), 2: Decimal("1.0"), 3: Decimal("1.1"), 4: Decimal("1.2"),
    5: Decimal("1.2"), 6: Decimal("1.5"), 7: Decimal("1.8"), 8: Decimal("1.8"),
    9: Decimal("1.5"), 10: Decimal("1.2"), 11: Decimal("1.0"), 12: Decimal("1.5"),
}
LOYALTY_DISCOUNTS = {
    "bronze": Decimal("0.05"), "silver": Decimal("0.10"),
    "gold": Decimal("0.15"), "platinum": Decimal("0.20"),
}
LOYALTY_THRESHOLDS = [(10000, "platinum"), (5000, "gold"), (1000, "silver"), (0, "bronze")]

CENTS = Decimal("0.01")


def parse_stay_date(value):
    """
    Turn request input into a date:
      - date / datetime objects pass through
      - ISO strings ("2027-06-10") are read directly
      - anything else goes through dateparser, preferring future dates ("June 10", "next friday")
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not str(value).strip():
        raise ValueError("date is required")
    s = str(value).strip()
    try:
        return date.fromisoformat(s)
    except ValueError:
        pass
    parsed = parse_date(s, settings={'PREFER_DATES_FROM': 'future'})
    if parsed is None:
        raise ValueError(f"could not understand date '{s}'")
    return parsed.date()


def nights_between(check_in, check_out):
    if check_out <= check_in:
        raise ValueError("check-out must be after check-in")
    return (check_out - check_in).days


def overlaps(a_start, a_end, b_start, b_end):
    # half-open ranges: a stay ending on the day another starts does not collide
    return a_start < b_end and b_start < a_end


def overlap_nights(start, end, range_start, range_end):
    lo = max(start, range_start)
    hi = min(end, range_end)
    if lo >= hi:
        return 0
    return (hi - lo).days


def can_transition(current, target):
    return target in BOOKING_TRANSITIONS.get(current, ())


def can_transition_maintenance(current, target):
    return target in MAINTENANCE_TRANSITIONS.get(current, ())


def _each_night(check_in, check_out):
    cur = check_in
    while cur < check_out:
        yield cur
        cur += timedelta(days=1)


def _money(value):
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


class PricingStrategy(ABC):
    name = None

    @abstractmethod
    def calculate_price(self, rate, check_in, check_out, guests=1):
        pass


class StandardPricing(PricingStrategy):
    """Nights x nightly rate."""
    name = "standard"

    def calculate_price(self, rate, check_in, check_out, guests=1):
        return _money(Decimal(rate) * nights_between(check_in, check_out))


class WeekendPricing(PricingStrategy):
    """Friday and Saturday nights are charged at WEEKEND_RATE."""
    name = "weekend"

    def calculate_price(self, rate, check_in, check_out, guests=1):
        nights_between(check_in, check_out)
        rate = Decimal(rate)
        total = Decimal(0)
        for night in _each_night(check_in, check_out):
            total += rate * WEEKEND_RATE if night.weekday() in (4, 5) else rate
        return _money(total)


class SeasonalPricing(PricingStrategy):
    name = "seasonal"

    def __init__(self, rates=None):
        self.rates = rates or SEASONAL_RATES

    def calculate_price(self, rate, check_in, check_out, guests=1):
        nights_between(check_in, check_out)
        rate = Decimal(rate)
        total = Decimal(0)
        for night in _each_night(check_in, check_out):
            total += rate * self.rates.get(night.month, Decimal(1))
        return _money(total)


class LoyaltyPricing(PricingStrategy):
    name = "loyalty"

    def __init__(self, tier="bronze"):
        self.tier = (tier or "bronze").lower()

    def calculate_price(self, rate, check_in, check_out, guests=1):
        base = Decimal(rate) * nights_between(check_in, check_out)
        discount = LOYALTY_DISCOUNTS.get(self.tier, Decimal(0))
        return _money(base - base * discount)


PRICING_STRATEGIES = {
    cls.name: cls for cls in (StandardPricing, WeekendPricing, SeasonalPricing, LoyaltyPricing)
}


def get_pricing_strategy(name=None, **options):
    if not name:
        name = "standard"
    try:
        cls = PRICING_STRATEGIES[name]
    except KeyError:
        raise ValueError(f"unknown pricing strategy '{name}'")
    return cls(**options)


def calculate_price(rate, check_in, check_out, strategy=None, guests=1):
    strategy = strategy or StandardPricing()
    return strategy.calculate_price(rate, check_in, check_out, guests=guests)


def loyalty_tier(points):
    points = points or 0
    for threshold, tier in LOYALTY_THRESHOLDS:
        if points >= threshold:
            return tier
    return "bronze"


def within_cancellation_window(check_in, now, cutoff_hours):
    """True while `now` is at least `cutoff_hours` before midnight of the check-in day."""
    deadline = datetime.combine(check_in, datetime.min.time()) - timedelta(hours=cutoff_hours)
    return now <= deadline


def sla_deadline(created_at, priority):
    return created_at + timedelta(hours=SLA_HOURS.get(priority, SLA_HOURS["medium"]))


def is_overdue(created_at, priority, status, now):
    if status in ("completed", "cancelled") or created_at is None:
        return False
    return now > sla_deadline(created_at, priority)


def elapsed_label(created_at, now):
    hours = int((now - created_at).total_seconds() // 3600)
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''}"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''}"
