"""
Pricing Calculator

Deterministic dynamic pricing for a parking window:

    raw   = rate x hours x time multiplier x day multiplier x demand multiplier
    final = max(raw, minimum charge)

The same function produces the client's provisional quote (demand fixed
at 1.0) and the server's authoritative price at booking time, so both
sides round identically. Arithmetic runs in a private Decimal context and
values are quantized to cents only when the breakdown is built.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Context, Decimal, ROUND_HALF_EVEN, ROUND_HALF_UP, localcontext
from typing import Iterable, Sequence

from .duration import MIN_DURATION, ensure_valid_window

CENT = Decimal('0.01')
ONE = Decimal('1')
SECONDS_PER_HOUR = Decimal(3600)

# Saturday, Sunday
WEEKEND_DAYS = frozenset({5, 6})

_PRICING_CONTEXT = Context(prec=28, rounding=ROUND_HALF_EVEN)


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


@dataclass(frozen=True)
class HourRange:
    """Local time-of-day range [start, end)."""
    start: time
    end: time

    def contains(self, moment: time) -> bool:
        return self.start <= moment < self.end


@dataclass(frozen=True)
class DemandTier:
    utilization: Decimal
    multiplier: Decimal


@dataclass(frozen=True)
class PricingConfig:
    peak_hours: tuple = (
        HourRange(time(7), time(10)),
        HourRange(time(16), time(19)),
    )
    peak_multiplier: Decimal = Decimal('1.25')
    off_peak_hours: tuple = (HourRange(time(0), time(6)),)
    off_peak_multiplier: Decimal = Decimal('0.85')
    weekend_multiplier: Decimal = Decimal('1.15')
    minimum_charge: Decimal = Decimal('5.00')
    demand_tiers: tuple = (
        DemandTier(Decimal('0.9'), Decimal('2.0')),
        DemandTier(Decimal('0.75'), Decimal('1.5')),
        DemandTier(Decimal('0.5'), Decimal('1.2')),
    )
    timezone: tzinfo = field(default=timezone.utc)
    min_duration: timedelta = MIN_DURATION

    def __post_init__(self):
        if self.weekend_multiplier < ONE:
            raise ValueError("Weekend multiplier cannot lower the price")
        if self.minimum_charge <= 0:
            raise ValueError("Minimum charge must be positive")
        if self.peak_multiplier <= 0 or self.off_peak_multiplier <= 0:
            raise ValueError("Time multipliers must be positive")


DEFAULT_CONFIG = PricingConfig()


@dataclass(frozen=True)
class PricingBreakdown:
    base_price_per_hour: Decimal
    hours: Decimal
    base_total: Decimal
    time_multiplier: Decimal
    day_multiplier: Decimal
    demand_multiplier: Decimal
    raw_price: Decimal
    final_price: Decimal
    minimum_charge: Decimal
    meets_minimum: bool

    def to_dict(self) -> dict:
        return {
            'base_price_per_hour': str(self.base_price_per_hour),
            'hours': str(self.hours),
            'base_total': str(self.base_total),
            'time_multiplier': str(self.time_multiplier),
            'day_multiplier': str(self.day_multiplier),
            'demand_multiplier': str(self.demand_multiplier),
            'raw_price': str(self.raw_price),
            'final_price': str(self.final_price),
            'minimum_charge': str(self.minimum_charge),
            'meets_minimum': self.meets_minimum,
        }


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_local(instant: datetime, tz: tzinfo) -> datetime:
    """Naive datetimes are read as already local to ``tz``."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=tz)
    return instant.astimezone(tz)


def duration_hours(start: datetime, end: datetime) -> Decimal:
    delta = end - start
    seconds = Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(10 ** 6)
    return seconds / SECONDS_PER_HOUR


def time_of_day_multiplier(start: datetime, config: PricingConfig = DEFAULT_CONFIG) -> Decimal:
    moment = to_local(start, config.timezone).time()
    if any(r.contains(moment) for r in config.peak_hours):
        return config.peak_multiplier
    if any(r.contains(moment) for r in config.off_peak_hours):
        return config.off_peak_multiplier
    return ONE


def day_of_week_multiplier(start: datetime, config: PricingConfig = DEFAULT_CONFIG) -> Decimal:
    if to_local(start, config.timezone).weekday() in WEEKEND_DAYS:
        return config.weekend_multiplier
    return ONE


def demand_multiplier_for(occupied: int, capacity: int, config: PricingConfig = DEFAULT_CONFIG) -> Decimal:
    """Surge multiplier from how much of the driveway is already taken."""
    if capacity <= 0 or occupied <= 0:
        return ONE
    with localcontext(_PRICING_CONTEXT):
        utilization = Decimal(occupied) / Decimal(capacity)
    for tier in sorted(config.demand_tiers, key=lambda t: t.utilization, reverse=True):
        if utilization >= tier.utilization:
            return tier.multiplier
    return ONE


@dataclass(frozen=True)
class RateOverride:
    """An owner-defined hourly rate for part of one local day."""
    day: date
    start: time
    end: time
    price_per_hour: Decimal


def resolve_hourly_rate(
    base_price_per_hour,
    overrides: Iterable[RateOverride],
    start: datetime,
    config: PricingConfig = DEFAULT_CONFIG,
) -> Decimal:
    """
    Rate that applies to a booking starting at ``start``.

    Overrides may overlap; the earliest-starting match wins so the
    choice is deterministic.
    """
    local = to_local(start, config.timezone)
    matches: Sequence[RateOverride] = sorted(
        (o for o in overrides if o.day == local.date() and o.start <= local.time() < o.end),
        key=lambda o: (o.start, o.end),
    )
    if matches:
        return to_decimal(matches[0].price_per_hour)
    return to_decimal(base_price_per_hour)


def calculate_price(
    base_price_per_hour,
    start: datetime,
    end: datetime,
    demand_multiplier=ONE,
    *,
    config: PricingConfig = DEFAULT_CONFIG,
    now: datetime | None = None,
) -> PricingBreakdown:
    """
    Price a window.

    The window is re-validated first (InvalidBookingWindow on failure);
    passing ``now`` adds the in-the-past check.
    """
    ensure_valid_window(start, end, now, min_duration=config.min_duration)

    rate = to_decimal(base_price_per_hour)
    demand = to_decimal(demand_multiplier)
    if rate < 0:
        raise ValueError("Hourly rate cannot be negative")
    if demand <= 0:
        raise ValueError("Demand multiplier must be positive")

    with localcontext(_PRICING_CONTEXT):
        hours = duration_hours(start, end)
        base_total = rate * hours
        time_multiplier = time_of_day_multiplier(start, config)
        day_multiplier = day_of_week_multiplier(start, config)
        raw_price = base_total * time_multiplier * day_multiplier * demand
        meets_minimum = raw_price >= config.minimum_charge
        final_price = raw_price if meets_minimum else config.minimum_charge

    return PricingBreakdown(
        base_price_per_hour=_cents(rate),
        hours=hours,
        base_total=_cents(base_total),
        time_multiplier=time_multiplier,
        day_multiplier=day_multiplier,
        demand_multiplier=demand,
        raw_price=_cents(raw_price),
        final_price=_cents(final_price),
        minimum_charge=_cents(config.minimum_charge),
        meets_minimum=meets_minimum,
    )
