"""Agregacao mensal densa e convencao de taxas."""

import logging
import random

from crm_service.app.aggregation import (
    aggregate_by_month,
    combine_series,
    rate,
    round_half_up,
    series_total,
    sum_in_month,
    to_date,
)

SALES = [
    {"sale_date": "2024-01-15", "amount": 100},
    {"sale_date": "2024-03-20", "amount": 200},
]


class TestRate:
    def test_zero_denominator(self):
        assert rate(5, 0) == 0

    def test_zero_numerator(self):
        assert rate(0, 7) == 0

    def test_full(self):
        assert rate(7, 7) == 100

    def test_rounds_half_up(self):
        # 12.5 -> 13 (round() do Python daria 12).
        assert rate(1, 8) == 13
        assert rate(1, 3) == 33

    def test_round_half_up_helper(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.4) == 2


class TestToDate:
    def test_iso_timestamp_uses_calendar_date(self):
        assert to_date("2024-03-20T23:59:00+00:00").isoformat() == "2024-03-20"

    def test_invalid_values(self):
        assert to_date(None) is None
        assert to_date("not-a-date") is None
        assert to_date("2024") is None


class TestAggregateByMonth:
    def test_example_year(self):
        series = aggregate_by_month(SALES, 2024, "sale_date")
        assert len(series) == 12
        assert series[0] == {"month": 1, "sum": 100.0, "count": 1}
        assert series[1] == {"month": 2, "sum": 0.0, "count": 0}
        assert series[2] == {"month": 3, "sum": 200.0, "count": 1}
        assert series_total(series) == 300.0

    def test_empty_input_is_dense(self):
        series = aggregate_by_month([], 2024, "sale_date")
        assert [e["month"] for e in series] == list(range(1, 13))
        assert all(e["sum"] == 0 and e["count"] == 0 for e in series)

    def test_other_years_ignored(self):
        records = SALES + [{"sale_date": "2023-01-10", "amount": 999}]
        assert aggregate_by_month(records, 2024, "sale_date")[0]["sum"] == 100.0

    def test_order_independent(self):
        records = [
            {"sale_date": f"2024-{m:02d}-0{d}", "amount": m * d}
            for m in range(1, 13)
            for d in range(1, 4)
        ]
        shuffled = list(records)
        random.Random(7).shuffle(shuffled)
        assert aggregate_by_month(records, 2024, "sale_date") == aggregate_by_month(shuffled, 2024, "sale_date")

    def test_unparseable_dates_skipped_with_warning(self, caplog):
        records = SALES + [{"sale_date": "not-a-date", "amount": 50}, {"amount": 10}]
        with caplog.at_level(logging.WARNING, logger="crm_service.app.aggregation"):
            series = aggregate_by_month(records, 2024, "sale_date")
        assert series_total(series) == 300.0
        assert "2 record(s)" in caplog.text

    def test_sum_in_month(self):
        assert sum_in_month(SALES, 2024, 3, "sale_date") == 200.0


class TestCombineSeries:
    def test_sums_per_month(self):
        sales = aggregate_by_month(SALES, 2024, "sale_date")
        billings = aggregate_by_month([{"billing_date": "2024-03-01", "amount": 50}], 2024, "billing_date")
        combined = combine_series(sales, billings)
        assert combined[2] == {"month": 3, "sum": 250.0, "count": 2}
        assert series_total(combined) == 350.0

    def test_no_series(self):
        assert series_total(combine_series()) == 0.0
