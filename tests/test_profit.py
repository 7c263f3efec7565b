from datetime import date, datetime, timedelta, timezone

import pytest

from stockledger.core.profit import (
    aggregate_profit,
    cash_flow_series,
    profit_trend_series,
    summarize_finances,
)
from stockledger.core.stock import LotStatus
from stockledger.entities import IncomeRecord

from factories import T0, make_expense, make_line, make_sale

BEFORE = T0 - timedelta(days=1)


def costs(ads=5, packaging=2):
    return [
        make_expense(1, "ads", ads, created_at=BEFORE),
        make_expense(2, "packaging", packaging, created_at=BEFORE),
    ]


def test_delivered_sale_profit():
    sale = make_sale(1, status="delivered", sold_amount=50, ad_id=1)
    lines = [make_line(1, -10, sale_id=1, unit_cost=3)]
    report = aggregate_profit(lines, [sale], costs())
    (row,) = report.sale_rows
    assert row.cost_total == 30
    assert row.ads_spent == 5
    assert row.packaging_spent == 2
    assert row.profit_loss == 13


def test_returned_sale_profit():
    sale = make_sale(1, status="returned", return_cost=20, ad_id=1)
    lines = [make_line(1, -1, sale_id=1, unit_cost=3)]
    (row,) = aggregate_profit(lines, [sale], costs()).sale_rows
    assert row.sold_amount == 0
    assert row.profit_loss == -27


def test_undelivered_sale_shows_committed_cost():
    sale = make_sale(1, status="sent")
    lines = [make_line(1, -2, sale_id=1, unit_cost=4)]
    (row,) = aggregate_profit(lines, [sale], []).sale_rows
    assert row.sold_amount == 0
    assert row.profit_loss == -8


def test_amounts_only_on_first_row_of_a_multi_lot_sale():
    sale = make_sale(1, status="delivered", sold_amount=100, ad_id=1)
    later = T0 + timedelta(hours=1)
    lines = [
        make_line(2, -1, lot_id=2, sale_id=1, unit_cost=12, created_at=later),
        make_line(1, -3, lot_id=1, sale_id=1, unit_cost=10, created_at=later),
    ]
    report = aggregate_profit(lines, [sale], costs(ads=8, packaging=4))
    first, second = report.sale_rows
    assert (first.transaction_id, second.transaction_id) == (1, 2)
    assert first.first_row and not second.first_row
    assert first.profit_loss == 58
    assert (second.sold_amount, second.ads_spent, second.packaging_spent) == (0, 0, 0)
    assert second.profit_loss == -12


def test_lot_rows_split_by_quantity_share():
    sale = make_sale(1, status="delivered", sold_amount=100, ad_id=1)
    lines = [
        make_line(1, -3, lot_id=1, sale_id=1, unit_cost=10),
        make_line(2, -1, lot_id=2, sale_id=1, unit_cost=12),
    ]
    report = aggregate_profit(lines, [sale], costs(ads=8, packaging=4))
    lots = {row.lot_id: row for row in report.lot_rows}
    assert lots[1].qty_sold == 3
    assert lots[1].revenue_allocated == pytest.approx(75)
    assert lots[1].ads_spent == pytest.approx(6)
    assert lots[1].profit == pytest.approx(36)
    assert lots[2].profit == pytest.approx(10)

    for field in ("revenue_allocated", "ads_spent", "packaging_spent"):
        lot_total = sum(getattr(row, field) for row in report.lot_rows)
        sale_field = {"revenue_allocated": "sold_amount"}.get(field, field)
        assert lot_total == pytest.approx(sum(getattr(row, sale_field) for row in report.sale_rows))


def test_lot_rows_count_only_delivered_quantity():
    sales = [make_sale(1, status="processing"), make_sale(2, status="returned", return_cost=9)]
    lines = [make_line(1, -2, sale_id=1, unit_cost=5), make_line(2, -1, sale_id=2, unit_cost=5)]
    (row,) = aggregate_profit(lines, sales, []).lot_rows
    assert row.qty_sold == 0
    assert row.cost_total == 0
    assert row.return_allocated == 9
    assert row.profit == -9


def test_pending_cost_falls_back_to_lot_cost():
    sale = make_sale(1, status="delivered", sold_amount=20)
    lines = [
        make_line(1, -1, sale_id=1, unit_cost=0, lot_cost_price=6),
        make_line(2, -1, lot_id=2, sale_id=1, unit_cost=None, lot_cost_price=0),
    ]
    first, second = aggregate_profit(lines, [sale], []).sale_rows
    assert first.unit_cost == 6
    assert not first.cost_pending
    assert second.unit_cost == 0
    assert second.cost_pending


def test_missing_ads_and_packaging_are_flagged_on_rows():
    sale = make_sale(1, status="delivered", sold_amount=40, ad_id=42)
    lines = [
        make_line(1, -1, lot_id=1, sale_id=1, unit_cost=3),
        make_line(2, -1, lot_id=2, sale_id=1, unit_cost=4),
    ]
    report = aggregate_profit(lines, [sale], [])
    first, second = report.sale_rows
    assert first.ads_pending and first.packaging_pending
    assert first.ads_spent == 0 and first.packaging_spent == 0
    assert not second.ads_pending and not second.packaging_pending
    assert not first.cost_pending
    assert all(row.cost_pending for row in report.lot_rows)


def test_rows_with_full_cost_data_are_not_flagged():
    sale = make_sale(1, status="delivered", sold_amount=50, ad_id=1)
    lines = [make_line(1, -10, sale_id=1, unit_cost=3)]
    report = aggregate_profit(lines, [sale], costs())
    (row,) = report.sale_rows
    assert not (row.cost_pending or row.ads_pending or row.packaging_pending)
    (lot,) = report.lot_rows
    assert not lot.cost_pending


def test_lot_rows_are_ordered_by_profit():
    sales = [make_sale(1, status="delivered", sold_amount=5), make_sale(2, status="delivered", sold_amount=30)]
    lines = [
        make_line(1, -1, lot_id=1, sale_id=1, unit_cost=4),
        make_line(2, -1, lot_id=2, sale_id=2, unit_cost=4),
        make_line(3, -1, lot_id=3, sale_id=2, unit_cost=4),
    ]
    report = aggregate_profit(lines, sales, [])
    assert [row.lot_id for row in report.lot_rows] == [2, 3, 1]


def test_non_sale_rows_are_not_profit_rows():
    lines = [make_line(1, 10, type="in"), make_line(2, -1, type="expiry")]
    report = aggregate_profit(lines, [], [])
    assert report.sale_rows == []
    assert report.lot_rows == []


def test_aggregation_is_idempotent():
    sales = [make_sale(1, status="delivered", sold_amount=50, ad_id=1), make_sale(2, ad_id=1)]
    lines = [make_line(1, -2, sale_id=1, unit_cost=3), make_line(2, -1, sale_id=2, unit_cost=3)]
    assert aggregate_profit(lines, sales, costs()) == aggregate_profit(lines, sales, costs())


def test_monthly_views_use_their_own_dates():
    sale = make_sale(1, status="delivered", sold_amount=50, order_date=date(2024, 2, 28))
    lines = [make_line(1, -1, sale_id=1, unit_cost=10)]
    income = [
        IncomeRecord(id=1, category="investment", amount=1000, income_date=date(2024, 3, 5)),
        IncomeRecord(id=2, category="income", amount=20, income_date=date(2024, 3, 6)),
    ]
    expenses = [make_expense(1, "other", 15)]
    monthly = aggregate_profit(lines, [sale], expenses, income).monthly

    assert monthly.profit_trend == {"2024-03": 40}
    assert monthly.cash_flow["2024-02"].revenue == 50
    march = monthly.cash_flow["2024-03"]
    assert (march.revenue, march.investment, march.expenses) == (20, 1000, 15)


def test_series_fill_missing_months():
    now = datetime(2024, 4, 15, tzinfo=timezone.utc)
    assert profit_trend_series({"2024-03": 5.0}, 3, now) == [
        {"month": "2024-02", "profit": 0.0},
        {"month": "2024-03", "profit": 5.0},
        {"month": "2024-04", "profit": 0.0},
    ]
    series = cash_flow_series({}, 2, now)
    assert [m.month for m in series] == ["2024-03", "2024-04"]
    assert all(m.revenue == 0 for m in series)


def test_series_cross_year_boundary():
    now = datetime(2024, 1, 10, tzinfo=timezone.utc)
    assert [p["month"] for p in profit_trend_series({}, 2, now)] == ["2023-12", "2024-01"]


def test_finance_summary():
    sale = make_sale(1, status="delivered", sold_amount=50, ad_id=1)
    transactions = [
        make_line(1, 10, type="in", lot_cost_price=3, created_at=BEFORE),
        make_line(2, -10, sale_id=1, unit_cost=3, lot_cost_price=3),
    ]
    expenses = costs() + [make_expense(3, "other", 4)]
    income = [
        IncomeRecord(id=1, category="income", amount=20, income_date=date(2024, 3, 1)),
        IncomeRecord(id=2, category="investment", amount=100, income_date=date(2024, 3, 1)),
    ]
    lot_values = [
        (LotStatus(1, 10, 10, 0, 0, 0, "Out of Stock"), 3),
        (LotStatus(2, 5, 0, 0, 0, 5, "Low Stock"), 2),
    ]
    report = aggregate_profit(transactions, [sale], expenses, income)
    summary = summarize_finances(report, transactions, [sale], expenses, income, lot_values)

    assert summary.total_revenue == 70
    assert summary.total_cogs == 30
    assert summary.total_expenses == 11
    assert summary.gross_profit == 9
    assert summary.total_investment == 100
    assert summary.total_stock_value == 10
    assert summary.cash_in_hand == 129
    assert summary.margin == pytest.approx(29 / 70 * 100)
    assert summary.pending_cost_data == 0


def test_finance_summary_counts_pending_sales():
    sales = [make_sale(1, ad_id=99), make_sale(2)]
    lines = [make_line(1, -1, sale_id=1, unit_cost=4), make_line(2, -1, sale_id=2, unit_cost=4)]
    report = aggregate_profit(lines, sales, [])
    summary = summarize_finances(report, lines, sales, [], [], [])
    assert summary.pending_cost_data == 2
    assert summary.margin == 0
