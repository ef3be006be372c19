"""Domain services for booking workflows.

``reserve_slot`` is the slot reservation guard: the only code path that
inserts a booking. Admission for one driveway is serialized twice over,
by a process-local mutex and by ``SELECT ... FOR UPDATE`` on the driveway
row, so two overlapping requests can never both see the last free unit.
Different driveways never share a mutex or a row lock.
"""

from __future__ import annotations

import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from django.conf import settings  # type: ignore

from apps.driveways.models import Driveway
from shared.application.retry import RetryPolicy
from shared.application.uow import DjangoUnitOfWork
from shared.domain.value_objects import TimeWindow

from .domain.duration import ensure_valid_window
from .domain.events import BookingCreated
from .domain.exceptions import DrivewayNotFound, SelfBookingNotAllowed, SlotUnavailable
from .domain.inventory import Allocation, Inventory
from .domain.pricing import (
    DemandTier,
    HourRange,
    PricingBreakdown,
    PricingConfig,
    calculate_price,
    demand_multiplier_for,
    resolve_hourly_rate,
)
from .models import Booking

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BookingRules:
    min_duration: timedelta
    max_duration: timedelta
    hold_timeout: timedelta


def booking_rules() -> BookingRules:
    conf = getattr(settings, "BOOKING_RULES", {})
    return BookingRules(
        min_duration=timedelta(minutes=int(conf.get("MIN_DURATION_MINUTES", 10))),
        max_duration=timedelta(hours=int(conf.get("MAX_DURATION_HOURS", 168))),
        hold_timeout=timedelta(minutes=int(conf.get("HOLD_TIMEOUT_MINUTES", 15))),
    )


def booking_currency() -> str:
    return getattr(settings, "PAYMENT_GATEWAY", {}).get("CURRENCY", "USD")


def _hour_ranges(pairs) -> tuple:
    return tuple(HourRange(time.fromisoformat(start), time.fromisoformat(end)) for start, end in pairs)


def pricing_config_from_settings() -> PricingConfig:
    """Build the calculator configuration from ``settings.BOOKING_PRICING``."""
    conf = getattr(settings, "BOOKING_PRICING", {})
    defaults = PricingConfig()
    options = {"min_duration": booking_rules().min_duration}
    if "PEAK_HOURS" in conf:
        options["peak_hours"] = _hour_ranges(conf["PEAK_HOURS"])
    if "OFF_PEAK_HOURS" in conf:
        options["off_peak_hours"] = _hour_ranges(conf["OFF_PEAK_HOURS"])
    if "DEMAND_TIERS" in conf:
        options["demand_tiers"] = tuple(
            DemandTier(Decimal(str(utilization)), Decimal(str(multiplier)))
            for utilization, multiplier in conf["DEMAND_TIERS"]
        )
    if "TIME_ZONE" in conf:
        options["timezone"] = ZoneInfo(conf["TIME_ZONE"])
    return PricingConfig(
        peak_multiplier=Decimal(str(conf.get("PEAK_MULTIPLIER", defaults.peak_multiplier))),
        off_peak_multiplier=Decimal(str(conf.get("OFF_PEAK_MULTIPLIER", defaults.off_peak_multiplier))),
        weekend_multiplier=Decimal(str(conf.get("WEEKEND_MULTIPLIER", defaults.weekend_multiplier))),
        minimum_charge=Decimal(str(conf.get("MINIMUM_CHARGE_FLOOR", defaults.minimum_charge))),
        **options,
    )


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------

def get_active_driveway(driveway_id) -> Driveway:
    try:
        return Driveway.objects.get(pk=driveway_id, is_active=True)
    except Driveway.DoesNotExist:
        raise DrivewayNotFound() from None


def current_occupancy(driveway: Driveway, start: datetime, end: datetime) -> int:
    """Peak number of capacity-holding bookings inside [start, end); unlocked read."""
    rows = (
        Booking.objects.holding()
        .filter(driveway=driveway)
        .overlapping(start, end)
        .values_list("pk", "start_time", "end_time")
    )
    inventory = Inventory(
        driveway.pk,
        driveway.capacity,
        [Allocation(pk, TimeWindow(s, e)) for pk, s, e in rows],
    )
    return inventory.occupancy(TimeWindow(start, end))


def quote_price(
    driveway: Driveway,
    start: datetime,
    end: datetime,
    *,
    now: datetime,
    demand_multiplier=Decimal("1"),
    config: PricingConfig | None = None,
) -> PricingBreakdown:
    """Price a window on ``driveway``; quotes shown to drivers use demand 1.0."""
    config = config or pricing_config_from_settings()
    rate = resolve_hourly_rate(driveway.base_price_per_hour, driveway.rate_overrides(), start, config)
    return calculate_price(rate, start, end, demand_multiplier, config=config, now=now)


def authoritative_price(driveway: Driveway, start: datetime, end: datetime, *, now: datetime) -> PricingBreakdown:
    """Server-side price with the real demand multiplier."""
    config = pricing_config_from_settings()
    ensure_valid_window(start, end, now, min_duration=config.min_duration)
    occupied = current_occupancy(driveway, start, end)
    demand = demand_multiplier_for(occupied, driveway.capacity, config)
    return quote_price(driveway, start, end, now=now, demand_multiplier=demand, config=config)


# ---------------------------------------------------------------------------
# Slot reservation guard
# ---------------------------------------------------------------------------

class _DrivewayMutex:
    __slots__ = ("lock", "__weakref__")

    def __init__(self):
        self.lock = threading.Lock()


_mutexes: "weakref.WeakValueDictionary[int, _DrivewayMutex]" = weakref.WeakValueDictionary()
_mutexes_guard = threading.Lock()


@contextmanager
def driveway_mutex(driveway_id):
    with _mutexes_guard:
        mutex = _mutexes.get(driveway_id)
        if mutex is None:
            mutex = _DrivewayMutex()
            _mutexes[driveway_id] = mutex
    with mutex.lock:
        yield


def release_overdue_holds(driveway_id, now: datetime) -> int:
    """Expire PENDING bookings on the driveway whose hold deadline has passed."""
    from .application.command_handlers import ExpireBookingCommand, ExpireBookingHandler

    overdue = list(
        Booking.objects.filter(
            driveway_id=driveway_id,
            status=Booking.Status.PENDING,
            expires_at__lte=now,
        ).values_list("pk", flat=True)
    )
    handler = ExpireBookingHandler()
    released = 0
    for booking_id in overdue:
        # None when a concurrent worker settled it between the read and the lock
        if handler.handle(ExpireBookingCommand(booking_id=booking_id, now=now)) is not None:
            released += 1
    return released


def reserve_slot(
    driveway_id,
    start: datetime,
    end: datetime,
    driver_id,
    *,
    now: datetime,
    pricing: PricingBreakdown,
    vehicle_info: dict | None = None,
    special_requests: str = "",
    policy: RetryPolicy | None = None,
) -> Booking:
    """
    Admit a booking for one unit of the driveway's capacity.

    Returns the new PENDING/PENDING booking, or raises SlotUnavailable
    when the overlapping capacity-holding bookings already fill the
    driveway. The window is validated before any lock is taken.
    """
    rules = booking_rules()
    ensure_valid_window(start, end, now, min_duration=rules.min_duration)
    policy = policy or RetryPolicy.from_settings()

    with driveway_mutex(driveway_id):
        policy.call(release_overdue_holds, driveway_id, now)
        return policy.call(
            _admit,
            driveway_id,
            TimeWindow(start, end),
            driver_id,
            now=now,
            hold_timeout=rules.hold_timeout,
            pricing=pricing,
            vehicle_info=vehicle_info or {},
            special_requests=special_requests,
        )


def _admit(driveway_id, window: TimeWindow, driver_id, *, now, hold_timeout, pricing, vehicle_info, special_requests) -> Booking:
    with DjangoUnitOfWork() as uow:
        try:
            driveway = Driveway.objects.select_for_update().get(pk=driveway_id, is_active=True)
        except Driveway.DoesNotExist:
            raise DrivewayNotFound() from None
        if driveway.owner_id == driver_id:
            raise SelfBookingNotAllowed()

        rows = (
            Booking.objects.holding()
            .filter(driveway=driveway)
            .overlapping(window.start, window.end)
            .values_list("pk", "start_time", "end_time")
        )
        inventory = Inventory(
            driveway.pk,
            driveway.capacity,
            [Allocation(pk, TimeWindow(s, e)) for pk, s, e in rows],
        )
        if not inventory.can_allocate(window):
            logger.info(
                f"Rejected reservation on driveway {driveway.pk} for {window}: "
                f"{inventory.occupancy(window)}/{driveway.capacity} units taken"
            )
            raise SlotUnavailable()

        booking = Booking.objects.create(
            driveway=driveway,
            driver_id=driver_id,
            start_time=window.start,
            end_time=window.end,
            total_price=pricing.final_price,
            currency=booking_currency(),
            pricing=pricing.to_dict(),
            vehicle_info=vehicle_info,
            special_requests=special_requests,
            expires_at=now + hold_timeout,
        )
        uow.record(
            BookingCreated(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                driveway_id=driveway.pk,
                driver_id=driver_id,
                owner_id=driveway.owner_id,
                start_time=window.start,
                end_time=window.end,
                total_price=booking.total_price,
                expires_at=booking.expires_at,
            )
        )

    logger.info(
        f"Reserved driveway {driveway.pk} for {window} as booking {booking.booking_code} "
        f"(hold until {booking.expires_at.isoformat()})"
    )
    return booking
