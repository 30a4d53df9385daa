#!/usr/bin/env python3
"""
Export the yearly revenue report from the CRM backend.

This script calls:
  GET /reports/revenue?year=YYYY

and prints one line per month (sales, billings, total), followed by the
yearly total. Optionally writes the same table as CSV (";" separated, the
format the admin panel exports).

Examples:
  python tools/reports/export_revenue_report.py
  python tools/reports/export_revenue_report.py --year 2024
  python tools/reports/export_revenue_report.py --year 2024 --csv revenue_2024.csv
"""

from __future__ import annotations

import argparse
import csv
import sys
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, List, Optional

import requests

MONTH_LABELS = ["Jan", "Fev", "Mar", "Abr", "Mai", "Jun", "Jul", "Ago", "Set", "Out", "Nov", "Dez"]


@dataclass
class MonthRow:
    month: int
    label: str
    sales: float
    billings: float
    total: float
    count: int


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export the monthly revenue report (sales + billings).",
    )
    parser.add_argument(
        "--backend-url",
        default="http://localhost:8000",
        help="Base URL of the CRM backend.",
    )
    parser.add_argument(
        "--user-id",
        default="local",
        help="Owner id sent as X-User-Id.",
    )
    parser.add_argument(
        "--year",
        type=int,
        default=date.today().year,
        help="Report year (default: current year).",
    )
    parser.add_argument(
        "--csv",
        default="",
        help="Optional CSV output path.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=20.0,
        help="HTTP timeout in seconds.",
    )
    return parser.parse_args(argv)


def fetch_report(backend_url: str, year: int, user_id: str, timeout: float) -> Dict[str, Any]:
    url = f"{backend_url.rstrip('/')}/reports/revenue"
    resp = requests.get(url, params={"year": year}, headers={"X-User-Id": user_id}, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


def build_rows(report: Dict[str, Any]) -> List[MonthRow]:
    """Month rows from the report payload; months missing from a series count as zero."""
    sales = {int(e["month"]): e for e in report.get("sales") or []}
    billings = {int(e["month"]): e for e in report.get("billings") or []}
    rows = []
    for m in range(1, 13):
        s = sales.get(m) or {}
        b = billings.get(m) or {}
        s_sum = float(s.get("sum") or 0)
        b_sum = float(b.get("sum") or 0)
        rows.append(
            MonthRow(
                month=m,
                label=MONTH_LABELS[m - 1],
                sales=s_sum,
                billings=b_sum,
                total=s_sum + b_sum,
                count=int(s.get("count") or 0) + int(b.get("count") or 0),
            )
        )
    return rows


def print_table(year: int, rows: List[MonthRow]) -> None:
    print(f"Revenue report {year}")
    print(f"{'month':<6}{'sales':>14}{'billings':>14}{'total':>14}{'records':>9}")
    for r in rows:
        print(f"{r.label:<6}{r.sales:>14.2f}{r.billings:>14.2f}{r.total:>14.2f}{r.count:>9}")
    print(f"\nTotal: {sum(r.total for r in rows):.2f}")


def write_csv(path: str, rows: List[MonthRow]) -> None:
    with open(path, "w", newline="", encoding="utf-8-sig") as f:
        writer = csv.DictWriter(f, fieldnames=list(asdict(rows[0])), delimiter=";")
        writer.writeheader()
        for r in rows:
            writer.writerow(asdict(r))


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        report = fetch_report(args.backend_url, args.year, args.user_id, args.timeout)
    except requests.RequestException as e:
        print(f"Error fetching revenue report: {e}", file=sys.stderr)
        return 2

    rows = build_rows(report)
    print_table(args.year, rows)

    if args.csv:
        try:
            write_csv(args.csv, rows)
        except OSError as e:
            print(f"Error writing CSV: {e}", file=sys.stderr)
            return 1
        print(f"CSV written: {args.csv}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
