"""สถิติและรายงาน"""

from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class ABCItem(BaseModel):
    product_id: int
    sku: str
    name: str
    stock_qty: float
    value: float
    percentage: float
    cumulative_percentage: float
    abc_class: str


class TurnoverItem(BaseModel):
    product_id: int
    sku: str
    name: str
    current_stock: float
    issued_qty: float
    turnover_ratio: float
    avg_daily_usage: float
    days_of_stock: float


class TrendPoint(BaseModel):
    date: str
    receive: float = 0
    issue: float = 0
    transfer: float = 0
    adjust: float = 0
    return_: float = Field(0, alias="return")

    model_config = ConfigDict(populate_by_name=True)


class CategoryPerformance(BaseModel):
    category_id: Optional[int] = None
    category_name: str
    product_count: int
    stock_value: float
    movement_count: int
    avg_turnover: float


class SupplierPerformance(BaseModel):
    supplier_id: int
    supplier_name: str
    total_pos: int
    total_value: float
    avg_lead_time_days: Optional[float] = None
    on_time_rate: float
    quality_score: float


class NamedValue(BaseModel):
    name: str
    value: float


class TopProduct(BaseModel):
    product_id: int
    sku: str
    name: str
    value: float


class DashboardAlerts(BaseModel):
    low_stock: int
    expiring_soon: int
    pending_prs: int
    draft_pos: int


class DashboardData(BaseModel):
    total_stock_value: float
    stock_value_by_category: List[NamedValue]
    movements_today: int
    movements_this_week: int
    movements_this_month: int
    alerts: DashboardAlerts
    top_products_by_value: List[TopProduct]
    top_products_by_movement: List[TopProduct]


class TopIssueProduct(BaseModel):
    product_id: int
    sku: str
    name: str
    total_qty: float
    issue_count: int


class DeadStockItem(BaseModel):
    product_id: int
    sku: str
    name: str
    stock_qty: float
    stock_value: float
    last_movement_at: Optional[datetime] = None
    days_since_move: int


class SupplierLeadTime(BaseModel):
    supplier_id: int
    supplier_name: str
    avg_lead_time_days: float
    min_lead_time_days: int
    max_lead_time_days: int
    grn_count: int


class CycleTimeDetail(BaseModel):
    pr_id: int
    pr_number: str
    po_id: int
    po_number: str
    pr_created_at: datetime
    po_created_at: datetime
    cycle_days: int


class CycleTimeReport(BaseModel):
    count: int
    avg_days: int
    min_days: int
    max_days: int
    distribution: Dict[str, int]
    details: List[CycleTimeDetail]


class ForecastItem(BaseModel):
    product_id: int
    sku: str
    name: str
    current_stock: float
    reorder_point: float
    monthly_usage: List[float]
    avg_monthly_usage: float
    forecast_next_month: float
    days_of_supply: float
    suggested_order: float


class OrderSummaryItem(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    sku: str
    name: str
    variant_name: Optional[str] = None
    qty: float
    movement_doc_number: str
    issued_at: datetime


class OrderSummary(BaseModel):
    order_ref: str
    first_issue_at: datetime
    last_issue_at: datetime
    item_count: int
    total_qty: float
    items: List[OrderSummaryItem]


class OrderSummaryReport(BaseModel):
    total_orders: int
    total_items: int
    total_qty: float
    orders: List[OrderSummary]


class ProductForecast(BaseModel):
    """พยากรณ์จากการเบิกรายเดือน ค่าเฉลี่ยเคลื่อนที่ 3 เดือนล่าสุด"""
    product_id: int
    sku: str
    name: str
    category: Optional[str] = None
    current_stock: float
    reorder_point: float
    monthly_usage: List[float]
    avg_monthly_usage: float
    forecast_next_month: float
    days_of_supply: int
    suggested_order: float
    trend: str = Field(..., description="up / down / stable")


class MonthlyUsage(BaseModel):
    month: str = Field(..., description="YYYY-MM")
    receive: float
    issue: float


class UsageHistoryProduct(BaseModel):
    id: int
    sku: str
    name: str
    category: Optional[str] = None
    current_stock: float
    reorder_point: float


class ProductUsageHistory(BaseModel):
    product: UsageHistoryProduct
    history: List[MonthlyUsage]


class StockReportRow(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    sku: str
    name: str
    category: Optional[str] = None
    variant_name: Optional[str] = None
    warehouse_name: str
    location_code: str
    qty_on_hand: float
    unit_cost: float
    stock_value: float


class StockReport(BaseModel):
    total_qty: float
    total_value: float
    items: List[StockReportRow]
