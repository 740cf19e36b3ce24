from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from palletops.models import LocationType, ManifestType, ShipmentType, WriteOffReason


class OrderLineIn(BaseModel):
    item_id: str = Field(..., min_length=1)
    qty: int = Field(..., ge=1)


class ProductUpsert(BaseModel):
    item_id: str = Field(..., min_length=1)
    description: str = ''
    units_per_pallet: int = Field(..., ge=1)
    pallet_positions: int = Field(1, ge=1)
    active: bool = True


class ProductOut(BaseModel):
    item_id: str
    description: str
    units_per_pallet: int
    pallet_positions: int
    active: bool

    model_config = {'from_attributes': True}


class ReceivingOrderCreate(BaseModel):
    container_num: str = Field(..., min_length=1)
    seal_num: str | None = None
    lines: list[OrderLineIn] = Field(..., min_length=1)


class ReceivingLineOut(BaseModel):
    item_id: str
    expected_qty: int

    model_config = {'from_attributes': True}


class ReceivingOrderOut(BaseModel):
    id: int
    container_num: str
    seal_num: str | None
    status: str
    container_photos: list[str]
    receiving_form_ref: str | None
    finalized_at: datetime | None
    lines: list[ReceivingLineOut]

    model_config = {'from_attributes': True}


class StartUnloading(BaseModel):
    photo_refs: list[str]


class TallyRow(BaseModel):
    item_id: str = Field(..., min_length=1)
    qty: int = Field(..., ge=1)
    ship_now: bool = True


class FinalizeReceipt(BaseModel):
    receiving_form_ref: str


class ShippingOrderCreate(BaseModel):
    order_ref: str = Field(..., min_length=1)
    shipment_type: ShipmentType
    seal_num: str | None = None
    lines: list[OrderLineIn] = Field(..., min_length=1)


class ShippingLineOut(BaseModel):
    item_id: str
    requested_qty: int

    model_config = {'from_attributes': True}


class ShippingOrderOut(BaseModel):
    id: int
    order_ref: str
    shipment_type: str
    seal_num: str | None
    status: str
    shipped_at: datetime | None
    cancelled_at: datetime | None
    lines: list[ShippingLineOut]

    model_config = {'from_attributes': True}


class PickRequest(BaseModel):
    pallet_id: int


class LoadToggle(BaseModel):
    loaded: bool
    manifest_id: int | None = None


class FinalizeShipment(BaseModel):
    signed_form_ref: str


class ManifestCreate(BaseModel):
    manifest_type: ManifestType
    container_num: str | None = None
    seal_num: str | None = None


class ManifestOut(BaseModel):
    id: int
    manifest_type: str
    container_num: str | None
    seal_num: str | None
    status: str
    closed_at: datetime | None

    model_config = {'from_attributes': True}


class PalletOut(BaseModel):
    id: int
    item_id: str
    qty: int
    status: str
    location_id: int | None
    receiving_order_id: int | None
    shipping_order_id: int | None
    manifest_id: int | None
    is_cross_dock: bool
    received_at: datetime | None
    shipped_at: datetime | None

    model_config = {'from_attributes': True}


class LocationSelection(BaseModel):
    location_type: LocationType
    rack: int | None = None
    level: int | None = None
    position: str | None = None
    zone: int | None = None


class WriteOffRequest(BaseModel):
    reason: WriteOffReason
    note: str | None = None


class AdminPalletCreate(BaseModel):
    item_id: str = Field(..., min_length=1)
    qty: int = Field(..., ge=1)
    note: str | None = None
