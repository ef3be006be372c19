from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest

# Monday; far enough ahead to always be in the future
FUTURE_MONDAY = datetime(2030, 1, 7, tzinfo=dt_timezone.utc)


@pytest.fixture
def owner(db):
    from apps.users.models import User

    return User.objects.create_user(
        email="owner@example.com",
        phone="+15550000001",
        password="OwnerPass123",
        role=User.RoleChoices.OWNER,
    )


@pytest.fixture
def driver(db):
    from apps.users.models import User

    return User.objects.create_user(
        email="driver@example.com",
        phone="+15550000002",
        password="DriverPass123",
    )


@pytest.fixture
def driveway(owner):
    from apps.driveways.models import Driveway

    return Driveway.objects.create(
        owner=owner,
        title="Oak Street driveway",
        address="12 Oak Street",
        base_price_per_hour=Decimal("10.00"),
        capacity=1,
    )


@pytest.fixture
def make_booking(driver):
    """Insert a booking row directly, bypassing the reservation guard."""
    from apps.bookings.models import Booking

    def _make(driveway, *, start=None, hours=2, status="pending", payment_status="pending", **fields):
        start = start or FUTURE_MONDAY.replace(hour=14)
        fields.setdefault("driver", driver)
        fields.setdefault("total_price", Decimal("20.00"))
        fields.setdefault("expires_at", datetime.now(dt_timezone.utc) + timedelta(minutes=15))
        return Booking.objects.create(
            driveway=driveway,
            start_time=start,
            end_time=start + timedelta(hours=hours),
            status=status,
            payment_status=payment_status,
            **fields,
        )

    return _make
