from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from palletops.db import get_db
from palletops.dependencies import get_actor, unwrap
from palletops.schemas import (
    FinalizeReceipt,
    PalletOut,
    ReceivingOrderCreate,
    ReceivingOrderOut,
    StartUnloading,
    TallyRow,
)
from palletops.services.cross_dock_service import CrossDockAllocation
from palletops.services.order_status_service import (
    finalize_receipt,
    finish_tally,
    receiving_summary,
    start_unloading,
)
from palletops.services.pallet_planner_service import plan_receiving_tally
from palletops.services.product_service import OrderLineInput
from palletops.services.receiving_service import (
    confirm_tally_pallet,
    create_receiving_order,
    get_receiving_order,
    list_order_pallets,
    list_receiving_orders,
    tally_pallet_row,
    undo_tally_pallet,
)

router = APIRouter(prefix='/receiving-orders', tags=['receiving'])


def _order_out(order) -> dict:
    return ReceivingOrderOut.model_validate(order).model_dump(mode='json')


@router.post('', status_code=201)
def create_order(payload: ReceivingOrderCreate, request: Request, db: Session = Depends(get_db)):
    try:
        order = create_receiving_order(
            db,
            container_num=payload.container_num,
            seal_num=payload.seal_num,
            lines=[OrderLineInput(item_id=line.item_id, qty=line.qty) for line in payload.lines],
            actor=get_actor(request),
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    db.commit()
    return _order_out(order)


@router.get('')
def list_orders(db: Session = Depends(get_db)):
    return [_order_out(order) for order in list_receiving_orders(db)]


@router.get('/{receiving_order_id}')
def order_detail(receiving_order_id: int, db: Session = Depends(get_db)):
    order = get_receiving_order(db, receiving_order_id=receiving_order_id)
    if order is None:
        raise HTTPException(status_code=404, detail='Receiving order not found')
    return {
        **_order_out(order),
        'pallets': [
            PalletOut.model_validate(pallet).model_dump(mode='json')
            for pallet in list_order_pallets(db, receiving_order_id=order.id)
        ],
    }


@router.get('/{receiving_order_id}/plan')
def tally_plan(receiving_order_id: int, db: Session = Depends(get_db)):
    try:
        lines = plan_receiving_tally(db, receiving_order_id=receiving_order_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [asdict(line) for line in lines]


@router.post('/{receiving_order_id}/start-unloading')
def start_order_unloading(
    receiving_order_id: int,
    payload: StartUnloading,
    request: Request,
    db: Session = Depends(get_db),
):
    order = unwrap(
        db,
        start_unloading(
            db,
            receiving_order_id=receiving_order_id,
            photo_refs=payload.photo_refs,
            actor=get_actor(request),
        ),
    )
    db.commit()
    return _order_out(order)


@router.post('/{receiving_order_id}/pallets', status_code=201)
def tally_pallet(
    receiving_order_id: int,
    payload: TallyRow,
    request: Request,
    db: Session = Depends(get_db),
):
    actor = get_actor(request)
    if payload.ship_now:
        result = tally_pallet_row(
            db,
            receiving_order_id=receiving_order_id,
            item_id=payload.item_id,
            qty=payload.qty,
            actor=actor,
        )
    else:
        result = confirm_tally_pallet(
            db,
            receiving_order_id=receiving_order_id,
            item_id=payload.item_id,
            qty=payload.qty,
            actor=actor,
        )
    result = unwrap(db, result)
    db.commit()

    if isinstance(result, CrossDockAllocation):
        return {
            'cross_dock': True,
            'shipping_order_id': result.shipping_order_id,
            'order_ref': result.order_ref,
            'pool_remaining': result.pool_remaining,
            'pallet': PalletOut.model_validate(result.pallet).model_dump(mode='json'),
        }
    return {'cross_dock': False, 'pallet': PalletOut.model_validate(result).model_dump(mode='json')}


@router.delete('/{receiving_order_id}/pallets/{pallet_id}')
def undo_pallet(receiving_order_id: int, pallet_id: int, request: Request, db: Session = Depends(get_db)):
    pallet_ids = [pallet.id for pallet in list_order_pallets(db, receiving_order_id=receiving_order_id)]
    if pallet_id not in pallet_ids:
        raise HTTPException(status_code=404, detail='Pallet not found on this receiving order')
    undone = unwrap(db, undo_tally_pallet(db, pallet_id=pallet_id, actor=get_actor(request)))
    db.commit()
    return {'undone_pallet_id': undone}


@router.post('/{receiving_order_id}/finish-tally')
def finish_order_tally(receiving_order_id: int, request: Request, db: Session = Depends(get_db)):
    result = unwrap(db, finish_tally(db, receiving_order_id=receiving_order_id, actor=get_actor(request)))
    db.commit()
    return {
        **_order_out(result.receiving_order),
        'pallet_count': result.pallet_count,
        'loading_shipping_order_ids': result.loading_shipping_order_ids,
    }


@router.get('/{receiving_order_id}/summary')
def order_summary(receiving_order_id: int, db: Session = Depends(get_db)):
    if get_receiving_order(db, receiving_order_id=receiving_order_id) is None:
        raise HTTPException(status_code=404, detail='Receiving order not found')
    return [asdict(line) for line in receiving_summary(db, receiving_order_id=receiving_order_id)]


@router.post('/{receiving_order_id}/finalize')
def finalize_order(
    receiving_order_id: int,
    payload: FinalizeReceipt,
    request: Request,
    db: Session = Depends(get_db),
):
    order = unwrap(
        db,
        finalize_receipt(
            db,
            receiving_order_id=receiving_order_id,
            receiving_form_ref=payload.receiving_form_ref,
            actor=get_actor(request),
        ),
    )
    db.commit()
    return _order_out(order)
