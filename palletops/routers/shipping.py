from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from palletops.db import get_db
from palletops.dependencies import get_actor, unwrap
from palletops.models import ManifestType
from palletops.schemas import (
    FinalizeShipment,
    LoadToggle,
    ManifestCreate,
    ManifestOut,
    PalletOut,
    PickRequest,
    ShippingOrderCreate,
    ShippingOrderOut,
)
from palletops.services.order_status_service import (
    cancel_shipping_order,
    finalize_shipment,
    finish_loading,
    finish_picking,
    total_remaining_qty,
)
from palletops.services.product_service import OrderLineInput
from palletops.services.shipping_service import (
    cancel_manifest,
    create_manifest,
    create_shipping_order,
    get_shipping_order,
    list_open_manifests,
    list_order_pallets,
    list_pickable_pallets,
    list_shipping_orders,
    pick_pallet,
    toggle_loaded,
)

router = APIRouter(tags=['shipping'])


def _order_out(order) -> dict:
    return ShippingOrderOut.model_validate(order).model_dump(mode='json')


def _pallet_out(pallet) -> dict:
    return PalletOut.model_validate(pallet).model_dump(mode='json')


@router.post('/shipping-orders', status_code=201)
def create_order(payload: ShippingOrderCreate, request: Request, db: Session = Depends(get_db)):
    try:
        order = create_shipping_order(
            db,
            order_ref=payload.order_ref,
            shipment_type=payload.shipment_type,
            seal_num=payload.seal_num,
            lines=[OrderLineInput(item_id=line.item_id, qty=line.qty) for line in payload.lines],
            actor=get_actor(request),
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    db.commit()
    return _order_out(order)


@router.get('/shipping-orders')
def list_orders(db: Session = Depends(get_db)):
    return [_order_out(order) for order in list_shipping_orders(db)]


@router.get('/shipping-orders/{shipping_order_id}')
def order_detail(shipping_order_id: int, db: Session = Depends(get_db)):
    order = get_shipping_order(db, shipping_order_id=shipping_order_id)
    if order is None:
        raise HTTPException(status_code=404, detail='Shipping order not found')
    return {
        **_order_out(order),
        'remaining_qty': total_remaining_qty(db, shipping_order_id=order.id),
        'pallets': [_pallet_out(pallet) for pallet in list_order_pallets(db, shipping_order_id=order.id)],
    }


@router.get('/pickable-pallets')
def pickable_pallets(item_id: str, db: Session = Depends(get_db)):
    return [_pallet_out(pallet) for pallet in list_pickable_pallets(db, item_id=item_id)]


@router.post('/shipping-orders/{shipping_order_id}/picks')
def pick(shipping_order_id: int, payload: PickRequest, request: Request, db: Session = Depends(get_db)):
    pallet = unwrap(
        db,
        pick_pallet(db, pallet_id=payload.pallet_id, shipping_order_id=shipping_order_id, actor=get_actor(request)),
    )
    db.commit()
    return _pallet_out(pallet)


@router.post('/shipping-orders/{shipping_order_id}/finish-picking')
def finish_order_picking(shipping_order_id: int, request: Request, db: Session = Depends(get_db)):
    order = unwrap(db, finish_picking(db, shipping_order_id=shipping_order_id, actor=get_actor(request)))
    db.commit()
    return _order_out(order)


@router.post('/pallets/{pallet_id}/loaded')
def set_loaded(pallet_id: int, payload: LoadToggle, request: Request, db: Session = Depends(get_db)):
    try:
        result = toggle_loaded(
            db,
            pallet_id=pallet_id,
            loaded=payload.loaded,
            manifest_id=payload.manifest_id,
            actor=get_actor(request),
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    pallet = unwrap(db, result)
    db.commit()
    return _pallet_out(pallet)


@router.post('/shipping-orders/{shipping_order_id}/finish-loading')
def finish_order_loading(shipping_order_id: int, request: Request, db: Session = Depends(get_db)):
    result = unwrap(db, finish_loading(db, shipping_order_id=shipping_order_id, actor=get_actor(request)))
    db.commit()
    return {
        **_order_out(result.shipping_order),
        'completed': result.completed,
        'staged_remaining': result.staged_remaining,
    }


@router.post('/shipping-orders/{shipping_order_id}/finalize')
def finalize_order(
    shipping_order_id: int,
    payload: FinalizeShipment,
    request: Request,
    db: Session = Depends(get_db),
):
    order = unwrap(
        db,
        finalize_shipment(
            db,
            shipping_order_id=shipping_order_id,
            signed_form_ref=payload.signed_form_ref,
            actor=get_actor(request),
        ),
    )
    db.commit()
    return _order_out(order)


@router.post('/shipping-orders/{shipping_order_id}/cancel')
def cancel_order(shipping_order_id: int, request: Request, db: Session = Depends(get_db)):
    order = unwrap(db, cancel_shipping_order(db, shipping_order_id=shipping_order_id, actor=get_actor(request)))
    db.commit()
    return _order_out(order)


@router.post('/manifests', status_code=201)
def open_manifest(payload: ManifestCreate, db: Session = Depends(get_db)):
    try:
        manifest = create_manifest(
            db,
            manifest_type=payload.manifest_type,
            container_num=payload.container_num,
            seal_num=payload.seal_num,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    db.commit()
    return ManifestOut.model_validate(manifest).model_dump(mode='json')


@router.get('/manifests')
def open_manifests(manifest_type: ManifestType | None = None, db: Session = Depends(get_db)):
    return [
        ManifestOut.model_validate(manifest).model_dump(mode='json')
        for manifest in list_open_manifests(db, manifest_type=manifest_type)
    ]


@router.post('/manifests/{manifest_id}/cancel')
def cancel_open_manifest(manifest_id: int, request: Request, db: Session = Depends(get_db)):
    result = unwrap(db, cancel_manifest(db, manifest_id=manifest_id, actor=get_actor(request)))
    db.commit()
    return {
        **ManifestOut.model_validate(result.manifest).model_dump(mode='json'),
        'unloaded_pallet_ids': result.unloaded_pallet_ids,
        'reopened_shipping_order_ids': result.reopened_shipping_order_ids,
    }
