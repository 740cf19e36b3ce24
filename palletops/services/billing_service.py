from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from palletops.models import Pallet, PalletStatus, Product, ShipmentType, ShippingOrder

IN_WAREHOUSE_STATUSES = (PalletStatus.RECEIVED, PalletStatus.STORED, PalletStatus.STAGED)


@dataclass(frozen=True)
class BillingPallet:
    pallet_id: int
    status: PalletStatus
    is_cross_dock: bool
    created_at: datetime
    received_at: datetime | None = None
    shipped_at: datetime | None = None
    # None when the product row is missing; such pallets are not billed.
    pallet_positions: int | None = None
    shipping_order_id: int | None = None
    order_ref: str | None = None
    shipment_type: ShipmentType | None = None
    order_shipped_at: datetime | None = None

    @property
    def ship_event_at(self) -> datetime | None:
        return self.shipped_at or self.order_shipped_at


@dataclass(frozen=True)
class BillingMetrics:
    storage_pallet_positions: int
    in_pallet_positions_standard: int
    cross_dock_pallet_positions: int
    out_pallet_positions_standard: int
    hand_delivery_pallet_positions: int

    def as_dict(self) -> dict[str, int]:
        return {
            'storage_pallet_positions': self.storage_pallet_positions,
            'in_pallet_positions_standard': self.in_pallet_positions_standard,
            'cross_dock_pallet_positions': self.cross_dock_pallet_positions,
            'out_pallet_positions_standard': self.out_pallet_positions_standard,
            'hand_delivery_pallet_positions': self.hand_delivery_pallet_positions,
        }


@dataclass(frozen=True)
class HandDeliveryLine:
    shipping_order_id: int
    order_ref: str | None
    pallet_count: int
    pallet_positions: int


@dataclass(frozen=True)
class BillingWindow:
    date_from: date
    date_to: date
    start: datetime
    end: datetime
    zone: tzinfo

    def local_date(self, value: datetime) -> date:
        return _aware(value).astimezone(self.zone).date()

    def contains(self, value: datetime | None) -> bool:
        if value is None:
            return False
        value = _aware(value)
        return self.start <= value <= self.end


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive values; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _zone(tz: str | tzinfo | None) -> tzinfo:
    if tz is None:
        return timezone.utc
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def inclusive_day_count(start: date | datetime, end: date | datetime) -> int:
    """Whole days from start to end, counting both ends; times of day are ignored."""
    if isinstance(start, datetime):
        start = start.date()
    if isinstance(end, datetime):
        end = end.date()
    return (end - start).days + 1


def billing_window(date_from: date, date_to: date, tz: str | tzinfo | None = None) -> BillingWindow:
    if date_from > date_to:
        raise ValueError('Billing range start must not be after its end')
    zone = _zone(tz)
    return BillingWindow(
        date_from=date_from,
        date_to=date_to,
        start=datetime.combine(date_from, time.min, tzinfo=zone),
        end=datetime.combine(date_to, time.max, tzinfo=zone),
        zone=zone,
    )


def _storage(pallet: BillingPallet, window: BillingWindow) -> int:
    if pallet.status not in IN_WAREHOUSE_STATUSES:
        return 0
    occupancy_start = _aware(pallet.received_at or pallet.created_at)
    if occupancy_start > window.end:
        return 0
    first_day = max(window.local_date(occupancy_start), window.date_from)
    return pallet.pallet_positions * inclusive_day_count(first_day, window.date_to)


def _is_inbound_standard(pallet: BillingPallet, window: BillingWindow) -> bool:
    if pallet.is_cross_dock or not window.contains(pallet.created_at):
        return False
    shipped_at = pallet.ship_event_at
    # Only a shipment before the window opened takes the pallet out of the inbound count.
    return pallet.status != PalletStatus.SHIPPED or shipped_at is None or _aware(shipped_at) >= window.start


def _is_outbound(pallet: BillingPallet, window: BillingWindow) -> bool:
    return pallet.status == PalletStatus.SHIPPED and window.contains(pallet.ship_event_at)


def compute_billing_metrics(
    pallets: list[BillingPallet],
    date_from: date,
    date_to: date,
    tz: str | tzinfo | None = None,
) -> BillingMetrics:
    window = billing_window(date_from, date_to, tz)

    storage = inbound = cross_dock = outbound = hand_delivery = 0
    for pallet in pallets:
        if pallet.pallet_positions is None:
            continue
        positions = pallet.pallet_positions

        storage += _storage(pallet, window)
        if _is_inbound_standard(pallet, window):
            inbound += positions
        if pallet.is_cross_dock and window.contains(pallet.created_at):
            cross_dock += positions
        if _is_outbound(pallet, window):
            if pallet.shipment_type == ShipmentType.HAND_DELIVERY:
                hand_delivery += positions
            elif not pallet.is_cross_dock:
                outbound += positions

    return BillingMetrics(
        storage_pallet_positions=storage,
        in_pallet_positions_standard=inbound,
        cross_dock_pallet_positions=cross_dock,
        out_pallet_positions_standard=outbound,
        hand_delivery_pallet_positions=hand_delivery,
    )


def hand_delivery_breakdown(
    pallets: list[BillingPallet],
    date_from: date,
    date_to: date,
    tz: str | tzinfo | None = None,
) -> list[HandDeliveryLine]:
    window = billing_window(date_from, date_to, tz)

    by_order: dict[int, list[BillingPallet]] = {}
    for pallet in pallets:
        if pallet.pallet_positions is None or pallet.shipping_order_id is None:
            continue
        if pallet.shipment_type != ShipmentType.HAND_DELIVERY or not _is_outbound(pallet, window):
            continue
        by_order.setdefault(pallet.shipping_order_id, []).append(pallet)

    return [
        HandDeliveryLine(
            shipping_order_id=order_id,
            order_ref=rows[0].order_ref,
            pallet_count=len(rows),
            pallet_positions=sum(row.pallet_positions for row in rows),
        )
        for order_id, rows in sorted(by_order.items())
    ]


def load_billing_pallets(db: Session) -> list[BillingPallet]:
    rows = db.execute(
        select(
            Pallet,
            Product.pallet_positions,
            ShippingOrder.order_ref,
            ShippingOrder.shipment_type,
            ShippingOrder.shipped_at,
        )
        .outerjoin(Product, Product.item_id == Pallet.item_id)
        .outerjoin(ShippingOrder, ShippingOrder.id == Pallet.shipping_order_id)
        .order_by(Pallet.id.asc())
    ).all()
    return [
        BillingPallet(
            pallet_id=pallet.id,
            status=pallet.status,
            is_cross_dock=pallet.is_cross_dock,
            created_at=pallet.created_at,
            received_at=pallet.received_at,
            shipped_at=pallet.shipped_at,
            pallet_positions=pallet_positions,
            shipping_order_id=pallet.shipping_order_id,
            order_ref=order_ref,
            shipment_type=shipment_type,
            order_shipped_at=order_shipped_at,
        )
        for pallet, pallet_positions, order_ref, shipment_type, order_shipped_at in rows
    ]
