"""
Tests for the Parking Allocation Engine

Shared helpers:
- ManualClock: a clock callable that only moves when a test advances it
- make_lot: a small ParkingLot laid out from (zone id, [(spot id, spot type)])
"""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from parkinglot.domain.models import ParkingSpot, SpotType
from parkinglot.domain.aggregates import ParkingLot, ParkingZone


# 07:00 on a Monday, before the pricing peak window
START = datetime(2024, 1, 15, 7, 0)

Layout = Sequence[Tuple[str, Sequence[Tuple[str, SpotType]]]]

SINGLE_SPOT_LAYOUT: Layout = [("G", [("G-1", SpotType.REGULAR)])]


class ManualClock:
    def __init__(self, start: datetime = START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


def make_lot(clock: Optional[ManualClock] = None, layout: Optional[Layout] = None, **collaborators) -> ParkingLot:
    clock = clock or ManualClock()
    lot = ParkingLot("Test Lot", clock=clock, **collaborators)
    for zone_id, spots in (layout or SINGLE_SPOT_LAYOUT):
        zone = ParkingZone(zone_id)
        for spot_id, spot_type in spots:
            zone.add_spot(ParkingSpot(spot_id, spot_type, clock=clock))
        lot.add_zone(zone)
    return lot


def notified_messages(notifier, user_id: Optional[str] = None) -> List[str]:
    """Messages sent through a Mock notifier, optionally for one user"""
    return [
        call.args[1] for call in notifier.notify.call_args_list
        if user_id is None or call.args[0] == user_id
    ]
