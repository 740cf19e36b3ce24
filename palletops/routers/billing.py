from __future__ import annotations

import csv
from dataclasses import asdict
from datetime import date
from io import StringIO

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from palletops.config import settings
from palletops.db import get_db
from palletops.services.billing_service import compute_billing_metrics, hand_delivery_breakdown, load_billing_pallets

router = APIRouter(prefix='/billing', tags=['billing'])


def _parse_range(from_raw: str, to_raw: str) -> tuple[date, date]:
    try:
        date_from = date.fromisoformat(from_raw)
        date_to = date.fromisoformat(to_raw)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail='Invalid date filter') from exc
    if date_from > date_to:
        raise HTTPException(status_code=422, detail='Billing range start must not be after its end')
    return date_from, date_to


@router.get('/metrics')
def billing_metrics(date_from: str, date_to: str, db: Session = Depends(get_db)):
    start, end = _parse_range(date_from, date_to)
    pallets = load_billing_pallets(db)
    metrics = compute_billing_metrics(pallets, start, end, settings.billing_timezone)
    return {
        'date_from': start.isoformat(),
        'date_to': end.isoformat(),
        **metrics.as_dict(),
        'hand_delivery_orders': [
            asdict(line) for line in hand_delivery_breakdown(pallets, start, end, settings.billing_timezone)
        ],
    }


@router.get('/metrics.csv')
def billing_metrics_csv(date_from: str, date_to: str, db: Session = Depends(get_db)):
    start, end = _parse_range(date_from, date_to)
    metrics = compute_billing_metrics(load_billing_pallets(db), start, end, settings.billing_timezone)

    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(['metric', 'pallet_positions'])
    for name, value in metrics.as_dict().items():
        writer.writerow([name, value])
    buffer.seek(0)
    filename = f'billing_{start.isoformat()}_{end.isoformat()}.csv'
    return StreamingResponse(
        iter([buffer.getvalue()]),
        media_type='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )
