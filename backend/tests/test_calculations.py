"""ฟังก์ชันคำนวณที่ไม่แตะฐานข้อมูล"""
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

from warehouse.api.api_v1.endpoints.analytics import calculate_turnover, classify_abc
from warehouse.api.api_v1.endpoints.po import calculate_po_totals
from warehouse.api.api_v1.endpoints.reports import (
    cycle_time_bucket, forecast_values, month_starts, product_forecast_values, usage_trend
)
from warehouse.api.api_v1.endpoints.variants import generate_variant_combinations
from warehouse.services.cron_settings import day_of_week, format_days
from warehouse.services.doc_numbers import format_doc_number
from warehouse.services.stock_ledger import fmt_qty


def line(qty, price):
    return SimpleNamespace(qty=Decimal(qty), unit_price=Decimal(price))


class TestPOTotals:
    def test_vat_excluded(self):
        totals = calculate_po_totals([line("10", "100"), line("2", "25.50")], "EXCLUDED", 7)
        assert totals == {
            "subtotal": Decimal("1051.00"),
            "vat_amount": Decimal("73.57"),
            "total": Decimal("1124.57"),
        }

    def test_vat_included(self):
        totals = calculate_po_totals([line("1", "107")], "INCLUDED", Decimal("7"))
        assert totals["subtotal"] == Decimal("107.00")
        assert totals["vat_amount"] == Decimal("7.00")
        assert totals["total"] == Decimal("107.00")

    def test_no_vat_ignores_rate(self):
        totals = calculate_po_totals([line("3", "10")], "NO_VAT", 7)
        assert totals["vat_amount"] == Decimal("0.00")
        assert totals["total"] == Decimal("30.00")

    def test_rounds_half_up(self):
        totals = calculate_po_totals([line("1", "0.125")], "EXCLUDED", 0)
        assert totals["subtotal"] == Decimal("0.13")

    def test_empty_lines(self):
        assert calculate_po_totals([], "EXCLUDED", 7)["total"] == Decimal("0.00")


def test_classify_abc():
    rows = [
        {"product_id": 1, "sku": "A", "name": "a", "qty": 10, "value": 700},
        {"product_id": 2, "sku": "B", "name": "b", "qty": 5, "value": 200},
        {"product_id": 3, "sku": "C", "name": "c", "qty": 3, "value": 60},
        {"product_id": 4, "sku": "D", "name": "d", "qty": 1, "value": 40},
        {"product_id": 5, "sku": "E", "name": "e", "qty": 0, "value": 0},
    ]
    items = classify_abc(rows)
    assert [i.sku for i in items] == ["A", "B", "C", "D"]
    assert [i.abc_class for i in items] == ["A", "B", "C", "C"]
    assert items[0].percentage == 70.0
    assert items[1].cumulative_percentage == 90.0
    assert items[-1].cumulative_percentage == 100.0


def test_calculate_turnover():
    assert calculate_turnover(100, 30, 30) == {
        "turnover_ratio": 3.65,
        "avg_daily_usage": 1.0,
        "days_of_stock": 100.0,
    }
    idle = calculate_turnover(50, 0, 30)
    assert idle["turnover_ratio"] == 0
    assert idle["days_of_stock"] == 999


def test_cycle_time_bucket():
    assert cycle_time_bucket(0) == "same_day"
    assert cycle_time_bucket(1) == "one_day"
    assert cycle_time_bucket(3) == "two_to_three_days"
    assert cycle_time_bucket(7) == "four_to_seven_days"
    assert cycle_time_bucket(8) == "more_than_week"


def test_month_starts_crosses_year():
    assert month_starts(date(2024, 2, 15), 3) == [date(2023, 12, 1), date(2024, 1, 1), date(2024, 2, 1)]


def test_forecast_values():
    result = forecast_values([10, 20, 30], 40, 15)
    assert result["avg_monthly_usage"] == 20
    assert result["days_of_supply"] == 60.0
    assert result["suggested_order"] == 0

    short = forecast_values([30, 30], 10, 20)
    assert short["suggested_order"] == 40
    assert short["days_of_supply"] == 10.0

    assert forecast_values([], 10, 0)["days_of_supply"] == 999


def test_generate_variant_combinations():
    option_types = [
        {"option_type_id": 1, "option_type_name": "สี", "values": [{"id": 11, "value": "แดง"}, {"id": 12, "value": "ดำ"}]},
        {"option_type_id": 2, "option_type_name": "ไซส์", "values": [{"id": 21, "value": "M"}, {"id": 22, "value": "L"}]},
        {"option_type_id": 3, "option_type_name": "ลาย", "values": []},
    ]
    combos = generate_variant_combinations(option_types)
    assert [c["sku_suffix"] for c in combos] == ["แดง-M", "แดง-L", "ดำ-M", "ดำ-L"]
    assert [o["option_value_id"] for o in combos[0]["options"]] == [11, 21]
    assert generate_variant_combinations([]) == []


def test_format_doc_number():
    assert format_doc_number("PO", 15, 6, datetime(2024, 10, 5)) == "PO2410-000015"
    assert format_doc_number("MOV", 1, 6, datetime(2025, 1, 31)) == "MOV2501-000001"


def test_fmt_qty_strips_trailing_zeros():
    assert fmt_qty(Decimal("10.00")) == "10"
    assert fmt_qty(Decimal("2.50")) == "2.5"
    assert fmt_qty(None) == "0"


def test_usage_trend():
    assert usage_trend([10, 10, 20, 20]) == "up"
    assert usage_trend([20, 20, 10, 10]) == "down"
    assert usage_trend([10, 10, 10.5, 10.5]) == "stable"
    assert usage_trend([0, 0, 0, 0]) == "stable"


def test_product_forecast_values():
    values = product_forecast_values([30, 30, 30, 60, 60, 60], current_stock=45)
    assert values["avg_monthly_usage"] == 45
    assert values["forecast_next_month"] == 60
    # ใช้วันละ 1.5
    assert values["days_of_supply"] == 30
    assert values["suggested_order"] == 75
    assert values["trend"] == "up"

    idle = product_forecast_values([0, 0, 0], current_stock=5)
    assert idle["days_of_supply"] == 999
    assert idle["suggested_order"] == 0


def test_cron_days():
    assert day_of_week([5, 1, 3, 1]) == "mon,wed,fri"
    assert format_days(list(range(7))) == "ทุกวัน"
    assert format_days([5, 4, 3, 2, 1]) == "จันทร์-ศุกร์"
    assert format_days([6, 0]) == "เสาร์-อาทิตย์"
    assert format_days([2, 4]) == "อังคาร, พฤหัสบดี"
