from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from palletops.config import settings
from palletops.models import Location, LocationType, Pallet, PalletStatus

# Statuses of pallets that physically sit at their location.
OCCUPYING_STATUSES = (PalletStatus.RECEIVED, PalletStatus.STORED)


def rack_location_code(warehouse_code: str, rack: int, level: int, position: str) -> str:
    return f'{warehouse_code}-{rack}-{level}-{position}'


def aisle_location_code(warehouse_code: str, zone: int) -> str:
    return f'{warehouse_code}-AISLE-{zone:02d}'


def _validate_rack(rack: int | None, level: int | None, position: str | None) -> str:
    if rack is None or level is None or not position:
        raise ValueError('Rack locations need a rack, level and position')
    if rack < 1 or rack > settings.rack_count:
        raise ValueError(f'Rack must be between 1 and {settings.rack_count}')
    if level < 1 or level > settings.rack_levels:
        raise ValueError(f'Level must be between 1 and {settings.rack_levels}')
    normalized = position.strip().upper()
    if len(normalized) != 1 or normalized not in settings.rack_positions:
        raise ValueError(f'Position must be one of {settings.rack_positions}')
    return normalized


def resolve_location(
    db: Session,
    *,
    location_type: LocationType,
    rack: int | None = None,
    level: int | None = None,
    position: str | None = None,
    zone: int | None = None,
    warehouse_code: str | None = None,
) -> Location:
    """Return the stable location row for a rack slot or aisle zone, creating it on first use."""
    warehouse = warehouse_code or settings.warehouse_code
    if location_type == LocationType.RACK:
        position = _validate_rack(rack, level, position)
        code = rack_location_code(warehouse, rack, level, position)
        zone = None
    else:
        if zone is None or zone < 1 or zone > settings.aisle_zones:
            raise ValueError(f'Aisle zone must be between 1 and {settings.aisle_zones}')
        code = aisle_location_code(warehouse, zone)
        rack = level = position = None

    location = db.execute(select(Location).where(Location.code == code)).scalar_one_or_none()
    if location is not None:
        return location

    location = Location(
        code=code,
        warehouse_code=warehouse,
        location_type=location_type,
        rack=rack,
        level=level,
        position=position,
        zone=zone,
    )
    db.add(location)
    db.flush()
    return location


def count_pallets_at_location(db: Session, *, location_id: int, exclude_pallet_id: int | None = None) -> int:
    stmt = select(func.count(Pallet.id)).where(
        Pallet.location_id == location_id,
        Pallet.status.in_(OCCUPYING_STATUSES),
    )
    if exclude_pallet_id is not None:
        stmt = stmt.where(Pallet.id != exclude_pallet_id)
    return int(db.execute(stmt).scalar_one())


def location_conflict_warning(db: Session, *, location_id: int, exclude_pallet_id: int | None = None) -> str | None:
    existing = count_pallets_at_location(db, location_id=location_id, exclude_pallet_id=exclude_pallet_id)
    if existing == 0:
        return None
    return f'Location already has {existing} pallet(s). You can proceed anyway.'
