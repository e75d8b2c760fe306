# File: src/parkinglot/application/reporting.py
"""
Text reports rendered from a LotSnapshot.

These functions never touch the allocator, so a report can be built while
vehicles keep arriving and leaving.
"""

from typing import List

from ..domain.aggregates import LotSnapshot

RECENT_VIOLATIONS = 5
RULE = "=" * 60


def generate_parking_report(snapshot: LotSnapshot) -> str:
    lines: List[str] = [
        RULE,
        f"PARKING REPORT - {snapshot.lot_name}",
        f"Generated: {snapshot.generated_at:%Y-%m-%d %H:%M:%S} (state v{snapshot.version})",
        RULE,
        "",
        "ZONE SUMMARY",
    ]

    for zone in snapshot.zones:
        lines.append(
            f"  Zone {zone.zone_id} ({zone.name}): total {zone.total}, occupied {zone.occupied}, "
            f"reserved {zone.reserved}, available {zone.available}"
        )
    lines.append(f"  Overall: {snapshot.available_spots}/{snapshot.total_spots} spots available")

    lines += ["", "CURRENT OCCUPANCY"]
    if snapshot.parked:
        for parked in sorted(snapshot.parked, key=lambda p: p.entry_time):
            lines.append(
                f"  {parked.license_plate} ({parked.vehicle_type.name}) at {parked.spot_id}, "
                f"zone {parked.zone_id}, since {parked.entry_time:%Y-%m-%d %H:%M}"
            )
    else:
        lines.append("  No vehicles parked")

    lines += ["", "ACTIVE RESERVATIONS"]
    if snapshot.reservations:
        for reservation in snapshot.reservations:
            lines.append(
                f"  {reservation.reservation_id}: {reservation.license_plate} holds {reservation.spot_id} "
                f"until {reservation.end_time:%Y-%m-%d %H:%M}"
            )
    else:
        lines.append("  None")

    waiting = [(zone_id, users) for zone_id, users in snapshot.waitlists if users]
    lines += ["", "WAITLISTS"]
    if waiting:
        for zone_id, users in waiting:
            lines.append(f"  Zone {zone_id}: {', '.join(users)}")
    else:
        lines.append("  Empty")

    lines += ["", "RECENT VIOLATIONS"]
    recent = snapshot.violations[-RECENT_VIOLATIONS:]
    if recent:
        for violation in recent:
            lines.append(f"  {violation}")
    else:
        lines.append("  None")

    lines.append(RULE)
    return "\n".join(lines)


def format_availability(snapshot: LotSnapshot) -> str:
    lines = [f"Availability - {snapshot.lot_name}"]
    for zone in snapshot.zones:
        lines.append(f"Zone {zone.zone_id} ({zone.name}): {zone.available}/{zone.total} available")
        for entry in zone.by_type:
            lines.append(f"  {entry.spot_type.name}: {entry.available}/{entry.total}")
        lines.append(f"  Pricing: {zone.pricing}")
    return "\n".join(lines)
