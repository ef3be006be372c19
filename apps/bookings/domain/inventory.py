"""
Inventory

Capacity arithmetic for one driveway. The reservation guard loads every
non-terminal booking overlapping the requested window into an Inventory
while it holds the driveway lock, and asks it whether one more car fits.

The rule: at no instant may the number of overlapping non-terminal
bookings exceed the driveway's capacity. Windows are half-open, so a
booking ending at 10:00 and one starting at 10:00 never compete.
"""

from dataclasses import dataclass, field
from typing import Iterable, List

from shared.domain.value_objects import TimeWindow


@dataclass(frozen=True)
class Allocation:
    """A window held by a pending or confirmed booking."""
    booking_id: int | None
    window: TimeWindow


def peak_occupancy(windows: Iterable[TimeWindow], within: TimeWindow) -> int:
    """
    Highest number of ``windows`` overlapping any single instant of ``within``.

    Sweep over window boundaries clipped to ``within``; at equal instants
    departures are processed before arrivals.
    """
    boundaries = []
    for window in windows:
        if not window.overlaps_with(within):
            continue
        boundaries.append((max(window.start, within.start), 1))
        boundaries.append((min(window.end, within.end), -1))

    boundaries.sort(key=lambda b: (b[0], b[1]))

    current = peak = 0
    for _, delta in boundaries:
        current += delta
        peak = max(peak, current)
    return peak


@dataclass
class Inventory:
    """
    Capacity view of one driveway

    Usage:
        inventory = Inventory(driveway_id, capacity, allocations)
        if inventory.can_allocate(window):
            ...  # insert the booking
    """

    driveway_id: int
    capacity: int
    allocations: List[Allocation] = field(default_factory=list)

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError("Driveway capacity must be at least 1")

    def occupancy(self, window: TimeWindow) -> int:
        return peak_occupancy((a.window for a in self.allocations), window)

    def can_allocate(self, window: TimeWindow) -> bool:
        return self.occupancy(window) < self.capacity
