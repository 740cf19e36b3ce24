import argparse
import csv
import json
import sys
from dataclasses import asdict
from datetime import date

from palletops.config import settings
from palletops.db import SessionLocal
from palletops.services.billing_service import compute_billing_metrics, hand_delivery_breakdown, load_billing_pallets


def build_report(date_from: date, date_to: date, tz: str) -> dict:
    with SessionLocal() as db:
        pallets = load_billing_pallets(db)
    metrics = compute_billing_metrics(pallets, date_from, date_to, tz)
    return {
        'date_from': date_from.isoformat(),
        'date_to': date_to.isoformat(),
        'timezone': tz,
        'metrics': metrics.as_dict(),
        'hand_delivery_orders': [asdict(line) for line in hand_delivery_breakdown(pallets, date_from, date_to, tz)],
    }


def write_csv(report: dict, out) -> None:
    writer = csv.writer(out)
    writer.writerow(['metric', 'pallet_positions'])
    for name, value in report['metrics'].items():
        writer.writerow([name, value])


def main() -> None:
    parser = argparse.ArgumentParser(description='Print pallet-position billing metrics for a date range.')
    parser.add_argument('date_from', type=date.fromisoformat, help='First billed day (YYYY-MM-DD).')
    parser.add_argument('date_to', type=date.fromisoformat, help='Last billed day (YYYY-MM-DD).')
    parser.add_argument('--format', choices=('csv', 'json'), default='csv')
    parser.add_argument('--timezone', default=settings.billing_timezone, help='Timezone the day boundaries follow.')
    args = parser.parse_args()

    if args.date_from > args.date_to:
        parser.error('date_from must not be after date_to')

    report = build_report(args.date_from, args.date_to, args.timezone)
    if args.format == 'json':
        json.dump(report, sys.stdout, indent=2)
        sys.stdout.write('\n')
    else:
        write_csv(report, sys.stdout)


if __name__ == '__main__':
    main()
