from datetime import date

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select

from stockledger.models import ProductLot, Sale, Transaction
from stockledger.schemas import (
    ExpenseCreate,
    IncomeCreate,
    SaleAmountsUpdate,
    SaleCreate,
    SaleItemCreate,
    SaleStatusUpdate,
    StockInCreate,
)
from stockledger.services.finance_service import FinanceService
from stockledger.services.inventory_service import InventoryService
from stockledger.services.sales_service import SalesService


def receive(db, user, sku, lot_number, quantity, cost=10.0, day=1):
    return InventoryService(db).stock_in(
        StockInCreate(
            sku=sku,
            lot_number=lot_number,
            quantity=quantity,
            cost_price=cost,
            received_date=date(2024, 1, day),
        ),
        user,
    )


def order(*items, ad_id=None):
    return SaleCreate(
        phone1="9876543210",
        customer_name="Asha",
        ad_id=ad_id,
        items=[SaleItemCreate(product_id=pid, quantity=qty) for pid, qty in items],
    )


def count(db, model):
    return db.scalar(select(func.count()).select_from(model))


def test_stock_in_creates_product_and_lot(db, admin):
    result = receive(db, admin, "SKU-A", "L1", 8, cost=12.5)
    assert result.lot.quantity_remaining == 8
    assert result.lot.cost_price == 12.5
    assert not result.cost_pending

    (row,) = InventoryService(db).lot_statuses()
    assert (row.sku, row.name, row.stock_in, row.remaining) == ("SKU-A", "SKU-A", 8, 8)
    assert row.status == "Healthy"


def test_staff_stock_in_leaves_cost_pending(db, staff):
    result = receive(db, staff, "SKU-A", "L1", 3, cost=99)
    assert result.cost_pending
    assert result.lot.cost_price == 0


def test_sale_deducts_fifo_across_lots(db, admin):
    pid = receive(db, admin, "SKU-A", "L2", 5, cost=11, day=2).lot.product_id
    receive(db, admin, "SKU-A", "L1", 3, cost=10, day=1)

    result = SalesService(db).create_sale(order((pid, 4)), admin)

    lots = {lot.lot_number: lot for lot in db.scalars(select(ProductLot))}
    assert [(d.lot_id, d.quantity) for d in result.deductions] == [(lots["L1"].id, 3), (lots["L2"].id, 1)]
    assert [d.unit_cost for d in result.deductions] == [10, 11]
    assert result.sale.parcel_status == "processing"
    assert [(i.product_id, i.quantity) for i in result.sale.items] == [(pid, 4)]
    assert lots["L1"].quantity_remaining == 0
    assert lots["L2"].quantity_remaining == 4

    remaining = {row.lot_number: row.remaining for row in InventoryService(db).lot_statuses()}
    assert remaining == {"L1": 0, "L2": 4}


def test_multi_item_order_is_all_or_nothing(db, admin):
    a = receive(db, admin, "SKU-A", "A1", 5).lot.product_id
    b = receive(db, admin, "SKU-B", "B1", 1).lot.product_id

    with pytest.raises(HTTPException) as exc:
        SalesService(db).create_sale(order((a, 2), (b, 3)), admin)

    assert exc.value.status_code == 409
    assert exc.value.detail["reason"] == "stock"
    assert exc.value.detail["sku"] == "SKU-B"
    assert exc.value.detail["available"] == 1
    assert count(db, Sale) == 0
    assert db.scalar(select(func.count()).select_from(Transaction).where(Transaction.type == "sale")) == 0


def test_concurrent_sale_is_rolled_back(db, admin, monkeypatch):
    pid = receive(db, admin, "SKU-A", "L1", 5).lot.product_id
    service = SalesService(db)
    stale = service._inventory.available_lots([pid])

    SalesService(db).create_sale(order((pid, 3)), admin)
    monkeypatch.setattr(service._inventory, "available_lots", lambda product_ids: stale)

    with pytest.raises(HTTPException) as exc:
        service.create_sale(order((pid, 4)), admin)

    assert exc.value.status_code == 409
    assert exc.value.detail["reason"] == "stock"
    assert count(db, Sale) == 1
    (row,) = InventoryService(db).lot_statuses()
    assert row.remaining == 2


def test_unknown_product_is_not_found(db, admin):
    with pytest.raises(HTTPException) as exc:
        SalesService(db).create_sale(order((404, 1)), admin)
    assert exc.value.status_code == 404


def test_ad_must_be_an_ads_expense(db, admin):
    pid = receive(db, admin, "SKU-A", "L1", 5).lot.product_id
    other = FinanceService(db).create_expense(ExpenseCreate(category="other", amount=10), admin)
    with pytest.raises(HTTPException) as exc:
        SalesService(db).create_sale(order((pid, 1), ad_id=other.id), admin)
    assert exc.value.status_code == 422


def test_status_flow_and_write_once(db, admin, staff):
    pid = receive(db, admin, "SKU-A", "L1", 5).lot.product_id
    service = SalesService(db)
    sale_id = service.create_sale(order((pid, 2)), staff).sale.id

    assert service.update_status(sale_id, SaleStatusUpdate(parcel_status="sent"), staff).parcel_status == "sent"
    sale = service.update_status(sale_id, SaleStatusUpdate(parcel_status="delivered", sold_amount=60), staff)
    assert (sale.parcel_status, sale.sold_amount) == ("delivered", 60)

    with pytest.raises(HTTPException) as exc:
        service.update_status(sale_id, SaleStatusUpdate(parcel_status="delivered", sold_amount=80), staff)
    assert exc.value.status_code == 403
    assert exc.value.detail["reason"] == "permission"

    with pytest.raises(HTTPException) as exc:
        service.update_status(sale_id, SaleStatusUpdate(parcel_status="sent"), staff)
    assert exc.value.status_code == 409
    assert exc.value.detail["reason"] == "state"

    corrected = service.correct_amounts(sale_id, SaleAmountsUpdate(sold_amount=80), admin)
    assert corrected.sold_amount == 80


def test_delivery_without_amount_is_rejected(db, admin):
    pid = receive(db, admin, "SKU-A", "L1", 5).lot.product_id
    service = SalesService(db)
    sale_id = service.create_sale(order((pid, 1)), admin).sale.id
    service.update_status(sale_id, SaleStatusUpdate(parcel_status="sent"), admin)
    with pytest.raises(HTTPException) as exc:
        service.update_status(sale_id, SaleStatusUpdate(parcel_status="delivered"), admin)
    assert exc.value.status_code == 409
    assert db.get(Sale, sale_id).parcel_status == "sent"


def test_returned_sale_does_not_restock(db, admin):
    pid = receive(db, admin, "SKU-A", "L1", 5).lot.product_id
    service = SalesService(db)
    sale_id = service.create_sale(order((pid, 2)), admin).sale.id
    service.update_status(sale_id, SaleStatusUpdate(parcel_status="returned", return_cost=20), admin)

    (row,) = InventoryService(db).lot_statuses()
    assert (row.sold, row.returned, row.remaining) == (0, 2, 3)


def test_cost_correction_resolves_pending_rows(db, admin, staff):
    lot = receive(db, staff, "SKU-A", "L1", 5).lot
    service = SalesService(db)
    service.create_sale(order((lot.product_id, 2)), staff)

    finance = FinanceService(db)
    report = finance.profit_report()
    (row,) = report.sale_rows
    assert row.cost_pending
    assert row.packaging_pending and not row.ads_pending
    assert report.lot_rows[0].cost_pending
    assert finance.finance_summary().pending_reason == "cost_data"

    InventoryService(db).correct_lot_cost(lot.id, 7)
    (row,) = finance.profit_report().sale_rows
    assert row.unit_cost == 7
    assert row.cost_total == 14
    assert not row.cost_pending


def test_captured_unit_cost_survives_later_correction(db, admin):
    lot = receive(db, admin, "SKU-A", "L1", 5, cost=4).lot
    SalesService(db).create_sale(order((lot.product_id, 1)), admin)
    InventoryService(db).correct_lot_cost(lot.id, 9)

    (row,) = FinanceService(db).profit_report().sale_rows
    assert row.unit_cost == 4


def test_packaging_expense_requires_quantity(db, admin):
    finance = FinanceService(db)
    with pytest.raises(HTTPException) as exc:
        finance.create_expense(ExpenseCreate(category="packaging", amount=50), admin)
    assert exc.value.status_code == 422

    expense = finance.create_expense(
        ExpenseCreate(category="packaging", amount=50, packaging_quantity=10, description="boxes"), admin
    )
    assert expense.description == "Qty: 10 | boxes"


def test_reports_allocate_ads_and_packaging(db, admin):
    finance = FinanceService(db)
    ad = finance.create_expense(ExpenseCreate(category="ads", amount=100), admin)
    finance.create_expense(ExpenseCreate(category="packaging", amount=50, packaging_quantity=10), admin)
    pid = receive(db, admin, "SKU-A", "L1", 10, cost=3).lot.product_id

    sales = SalesService(db)
    sale_ids = [sales.create_sale(order((pid, 1), ad_id=ad.id), admin).sale.id for _ in range(4)]
    sales.update_status(sale_ids[0], SaleStatusUpdate(parcel_status="sent"), admin)
    sales.update_status(sale_ids[0], SaleStatusUpdate(parcel_status="delivered", sold_amount=40), admin)
    finance.create_income(IncomeCreate(category="investment", amount=500), admin)

    report = finance.profit_report()
    rows = {row.sale_id: row for row in report.sale_rows}
    assert {row.ads_spent for row in rows.values()} == {25}
    assert {row.packaging_spent for row in rows.values()} == {5}
    assert rows[sale_ids[0]].profit_loss == 40 - (3 + 25 + 5)
    assert len(report.profit_trend) == 12
    assert len(report.cash_flow) == 6

    summary = finance.finance_summary()
    assert summary.total_revenue == 40
    assert summary.total_investment == 500
    assert summary.total_stock_value == 6 * 3
    assert summary.currency == "INR"
