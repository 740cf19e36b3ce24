from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER primary keys.
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


class PalletStatus(str, Enum):
    RECEIVED = 'Received'
    STORED = 'Stored'
    STAGED = 'Staged'
    LOADED = 'Loaded'
    SHIPPED = 'Shipped'
    WRITE_OFF = 'WriteOff'


class ReceivingOrderStatus(str, Enum):
    PENDING = 'Pending'
    UNLOADING = 'Unloading'
    STAGED = 'Staged'
    RECEIVED = 'Received'


class ShippingOrderStatus(str, Enum):
    PENDING = 'Pending'
    PICKING = 'Picking'
    LOADING = 'Loading'
    COMPLETED = 'Completed'
    SHIPPED = 'Shipped'
    CANCELLED = 'Cancelled'


class ShipmentType(str, Enum):
    HAND_DELIVERY = 'Hand_Delivery'
    CONTAINER_LOADING = 'Container_Loading'


class LocationType(str, Enum):
    RACK = 'RACK'
    AISLE = 'AISLE'


class ManifestType(str, Enum):
    CONTAINER = 'Container'
    HAND_DELIVERY = 'Hand_Delivery'


class ManifestStatus(str, Enum):
    OPEN = 'Open'
    CLOSED = 'Closed'
    CANCELLED = 'Cancelled'


class WriteOffReason(str, Enum):
    DAMAGED = 'Damaged'
    LOST = 'Lost'
    COUNT_CORRECTION = 'Count Correction'


class PalletEventType(str, Enum):
    RECEIVED = 'received'
    CROSS_DOCKED = 'cross_docked'
    ADMIN_CREATED = 'admin_created'
    UNDONE = 'undone'
    PUT_AWAY = 'put_away'
    MOVED = 'moved'
    PICKED = 'picked'
    LOADED = 'loaded'
    UNLOADED = 'unloaded'
    SHIPPED = 'shipped'
    WRITTEN_OFF = 'written_off'


class OrderKind(str, Enum):
    RECEIVING = 'receiving'
    SHIPPING = 'shipping'


class Product(Base):
    __tablename__ = 'products'
    __table_args__ = (
        CheckConstraint('units_per_pallet > 0', name='products_units_per_pallet_positive'),
        CheckConstraint('pallet_positions >= 1', name='products_pallet_positions_min'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    item_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    units_per_pallet: Mapped[int] = mapped_column(Integer, nullable=False)
    pallet_positions: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default='1')
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ReceivingOrder(Base):
    __tablename__ = 'receiving_orders'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    container_num: Mapped[str] = mapped_column(Text, nullable=False)
    seal_num: Mapped[str | None] = mapped_column(Text)
    status: Mapped[ReceivingOrderStatus] = mapped_column(
        SQLEnum(ReceivingOrderStatus, name='receiving_order_status'),
        nullable=False,
        default=ReceivingOrderStatus.PENDING,
        server_default='PENDING',
    )
    container_photos: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    receiving_form_ref: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(Text)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    lines: Mapped[list[ReceivingOrderLine]] = relationship(
        back_populates='receiving_order', order_by='ReceivingOrderLine.id'
    )


class ReceivingOrderLine(Base):
    __tablename__ = 'receiving_order_lines'
    __table_args__ = (
        UniqueConstraint('receiving_order_id', 'item_id', name='receiving_order_lines_order_item_uniq'),
        CheckConstraint('expected_qty > 0', name='receiving_order_lines_expected_qty_positive'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    receiving_order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('receiving_orders.id', ondelete='CASCADE'), nullable=False
    )
    item_id: Mapped[str] = mapped_column(Text, ForeignKey('products.item_id'), nullable=False)
    expected_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    receiving_order: Mapped[ReceivingOrder] = relationship(back_populates='lines')


class ShippingOrder(Base):
    __tablename__ = 'shipping_orders'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_ref: Mapped[str] = mapped_column(Text, nullable=False)
    shipment_type: Mapped[ShipmentType] = mapped_column(SQLEnum(ShipmentType, name='shipment_type'), nullable=False)
    seal_num: Mapped[str | None] = mapped_column(Text)
    signed_form_ref: Mapped[str | None] = mapped_column(Text)
    status: Mapped[ShippingOrderStatus] = mapped_column(
        SQLEnum(ShippingOrderStatus, name='shipping_order_status'),
        nullable=False,
        default=ShippingOrderStatus.PENDING,
        server_default='PENDING',
    )
    created_by: Mapped[str | None] = mapped_column(Text)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    lines: Mapped[list[ShippingOrderLine]] = relationship(
        back_populates='shipping_order', order_by='ShippingOrderLine.id'
    )


class ShippingOrderLine(Base):
    __tablename__ = 'shipping_order_lines'
    __table_args__ = (
        UniqueConstraint('shipping_order_id', 'item_id', name='shipping_order_lines_order_item_uniq'),
        CheckConstraint('requested_qty > 0', name='shipping_order_lines_requested_qty_positive'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    shipping_order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('shipping_orders.id', ondelete='CASCADE'), nullable=False
    )
    item_id: Mapped[str] = mapped_column(Text, ForeignKey('products.item_id'), nullable=False)
    requested_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    shipping_order: Mapped[ShippingOrder] = relationship(back_populates='lines')


class Location(Base):
    __tablename__ = 'locations'
    __table_args__ = (UniqueConstraint('code', name='locations_code_key'),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(Text, nullable=False)
    warehouse_code: Mapped[str] = mapped_column(Text, nullable=False)
    location_type: Mapped[LocationType] = mapped_column(SQLEnum(LocationType, name='location_type'), nullable=False)
    rack: Mapped[int | None] = mapped_column(Integer)
    level: Mapped[int | None] = mapped_column(Integer)
    position: Mapped[str | None] = mapped_column(Text)
    zone: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Manifest(Base):
    __tablename__ = 'manifests'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    manifest_type: Mapped[ManifestType] = mapped_column(SQLEnum(ManifestType, name='manifest_type'), nullable=False)
    container_num: Mapped[str | None] = mapped_column(Text)
    seal_num: Mapped[str | None] = mapped_column(Text)
    status: Mapped[ManifestStatus] = mapped_column(
        SQLEnum(ManifestStatus, name='manifest_status'),
        nullable=False,
        default=ManifestStatus.OPEN,
        server_default='OPEN',
    )
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Pallet(Base):
    __tablename__ = 'pallets'
    __table_args__ = (
        CheckConstraint('qty > 0', name='pallets_qty_positive'),
        Index('pallets_receiving_order_item_idx', 'receiving_order_id', 'item_id'),
        Index('pallets_shipping_order_item_idx', 'shipping_order_id', 'item_id'),
        Index('pallets_location_idx', 'location_id'),
        # Undone pallets leave history behind; their ids must never come back.
        {'sqlite_autoincrement': True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    item_id: Mapped[str] = mapped_column(Text, ForeignKey('products.item_id'), nullable=False)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[PalletStatus] = mapped_column(SQLEnum(PalletStatus, name='pallet_status'), nullable=False)
    location_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('locations.id'))
    receiving_order_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('receiving_orders.id'))
    shipping_order_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('shipping_orders.id'))
    manifest_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('manifests.id'))
    is_cross_dock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {'version_id_col': version}


class PalletEvent(Base):
    __tablename__ = 'pallet_events'
    __table_args__ = (Index('pallet_events_pallet_idx', 'pallet_id'),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    # No FK: the history outlives an undone pallet.
    pallet_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    event_type: Mapped[PalletEventType] = mapped_column(
        SQLEnum(PalletEventType, name='pallet_event_type'), nullable=False
    )
    from_status: Mapped[PalletStatus | None] = mapped_column(SQLEnum(PalletStatus, name='pallet_status'))
    to_status: Mapped[PalletStatus | None] = mapped_column(SQLEnum(PalletStatus, name='pallet_status'))
    from_location_id: Mapped[int | None] = mapped_column(BigInteger)
    to_location_id: Mapped[int | None] = mapped_column(BigInteger)
    reason: Mapped[str | None] = mapped_column(Text)
    actor: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class OrderEvent(Base):
    __tablename__ = 'order_events'
    __table_args__ = (Index('order_events_undelivered_idx', 'delivered_at'),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_kind: Mapped[OrderKind] = mapped_column(SQLEnum(OrderKind, name='order_kind'), nullable=False)
    order_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str | None] = mapped_column(Text)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
