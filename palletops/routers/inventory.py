from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from palletops.db import get_db
from palletops.dependencies import get_actor, unwrap
from palletops.schemas import AdminPalletCreate, LocationSelection, PalletOut, ProductOut, ProductUpsert, WriteOffRequest
from palletops.services.audit_service import list_pallet_events
from palletops.services.inventory_service import create_admin_pallet, list_inventory, move_pallet, put_away, write_off
from palletops.services.location_service import resolve_location
from palletops.services.product_service import deactivate_product, list_products, upsert_product

router = APIRouter(tags=['inventory'])


def _pallet_out(pallet) -> dict:
    return PalletOut.model_validate(pallet).model_dump(mode='json')


@router.get('/products')
def products(include_inactive: bool = False, db: Session = Depends(get_db)):
    return [
        ProductOut.model_validate(product).model_dump()
        for product in list_products(db, include_inactive=include_inactive)
    ]


@router.put('/products')
def save_product(payload: ProductUpsert, db: Session = Depends(get_db)):
    try:
        product = upsert_product(
            db,
            item_id=payload.item_id,
            description=payload.description,
            units_per_pallet=payload.units_per_pallet,
            pallet_positions=payload.pallet_positions,
            active=payload.active,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    db.commit()
    return ProductOut.model_validate(product).model_dump()


@router.delete('/products/{item_id}')
def remove_product(item_id: str, db: Session = Depends(get_db)):
    try:
        product = deactivate_product(db, item_id=item_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return ProductOut.model_validate(product).model_dump()


@router.get('/inventory')
def inventory(item_id: str | None = None, db: Session = Depends(get_db)):
    return [
        {**_pallet_out(pallet), 'location_code': code}
        for pallet, code in list_inventory(db, item_id=item_id)
    ]


def _placement(db: Session, pallet_id: int, selection: LocationSelection, request: Request, operation):
    try:
        location = resolve_location(
            db,
            location_type=selection.location_type,
            rack=selection.rack,
            level=selection.level,
            position=selection.position,
            zone=selection.zone,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    result = unwrap(db, operation(db, pallet_id=pallet_id, location_id=location.id, actor=get_actor(request)))
    db.commit()
    return {**_pallet_out(result.pallet), 'location_code': result.location_code, 'warning': result.warning}


@router.post('/pallets/{pallet_id}/put-away')
def put_pallet_away(pallet_id: int, payload: LocationSelection, request: Request, db: Session = Depends(get_db)):
    return _placement(db, pallet_id, payload, request, put_away)


@router.post('/pallets/{pallet_id}/move')
def move(pallet_id: int, payload: LocationSelection, request: Request, db: Session = Depends(get_db)):
    return _placement(db, pallet_id, payload, request, move_pallet)


@router.post('/pallets/{pallet_id}/write-off')
def write_off_pallet(pallet_id: int, payload: WriteOffRequest, request: Request, db: Session = Depends(get_db)):
    pallet = unwrap(
        db,
        write_off(db, pallet_id=pallet_id, reason=payload.reason, note=payload.note, actor=get_actor(request)),
    )
    db.commit()
    return _pallet_out(pallet)


@router.post('/pallets', status_code=201)
def admin_pallet(payload: AdminPalletCreate, request: Request, db: Session = Depends(get_db)):
    pallet = unwrap(
        db,
        create_admin_pallet(db, item_id=payload.item_id, qty=payload.qty, note=payload.note, actor=get_actor(request)),
    )
    db.commit()
    return _pallet_out(pallet)


@router.get('/pallets/{pallet_id}/events')
def pallet_history(pallet_id: int, db: Session = Depends(get_db)):
    return [
        {
            'id': event.id,
            'event_type': event.event_type.value,
            'from_status': event.from_status.value if event.from_status else None,
            'to_status': event.to_status.value if event.to_status else None,
            'from_location_id': event.from_location_id,
            'to_location_id': event.to_location_id,
            'reason': event.reason,
            'actor': event.actor,
            'metadata': event.meta,
            'created_at': event.created_at.isoformat() if event.created_at else None,
        }
        for event in list_pallet_events(db, pallet_id=pallet_id)
    ]
