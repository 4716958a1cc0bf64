"""รายงาน"""

from collections import defaultdict
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import NotFoundError
from warehouse.models.movement import StockMovement, MovementLine
from warehouse.models.product import Product, ProductVariant
from warehouse.models.purchase_order import PurchaseOrder, GRN
from warehouse.models.purchase_requisition import PurchaseRequisition
from warehouse.models.stock import StockBalance
from warehouse.models.user import User
from warehouse.models.warehouse import Location
from warehouse.schemas.analytics import (
    TopIssueProduct, DeadStockItem, SupplierLeadTime, CycleTimeDetail, CycleTimeReport,
    ForecastItem, OrderSummary, OrderSummaryItem, OrderSummaryReport, ProductForecast,
    MonthlyUsage, UsageHistoryProduct, ProductUsageHistory, StockReportRow, StockReport
)
from warehouse.schemas.common import ActionResult, ok
from warehouse.schemas.stock import LowStockItem, ExpiringLotResponse
from warehouse.services.alerts import get_low_stock_items, get_expiring_lots
from warehouse.api.api_v1.endpoints.analytics import get_product_stock
from warehouse.api.api_v1.endpoints.stock import unit_cost_of

router = APIRouter()

ZERO = Decimal("0")


def posted_issue_lines():
    return (
        select(MovementLine, StockMovement.posted_at)
        .join(StockMovement, StockMovement.id == MovementLine.movement_id)
        .where(StockMovement.type == "ISSUE", StockMovement.status == "POSTED")
    )


def cycle_time_bucket(days: int) -> str:
    if days <= 0:
        return "same_day"
    if days == 1:
        return "one_day"
    if days <= 3:
        return "two_to_three_days"
    if days <= 7:
        return "four_to_seven_days"
    return "more_than_week"


def month_starts(today: date, months: int) -> List[date]:
    """วันแรกของเดือนย้อนหลัง N เดือน (รวมเดือนปัจจุบัน) เรียงจากเก่าไปใหม่"""
    starts = []
    year, month = today.year, today.month
    for _ in range(months):
        starts.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


def forecast_values(monthly_usage: List[float], current_stock: float, reorder_point: float) -> Dict[str, float]:
    avg = sum(monthly_usage) / len(monthly_usage) if monthly_usage else 0
    days_of_supply = current_stock / avg * 30 if avg > 0 else 999
    return {
        "avg_monthly_usage": round(avg, 2),
        "forecast_next_month": round(avg, 2),
        "days_of_supply": round(days_of_supply, 1),
        "suggested_order": round(max(0.0, avg - current_stock + reorder_point), 2),
    }


@router.get("/top-issue", response_model=ActionResult[List[TopIssueProduct]])
async def top_issue_products(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read")),
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(10, ge=1, le=100)) -> Any:
    since = datetime.utcnow() - timedelta(days=days)
    total_qty = func.sum(MovementLine.qty)
    result = await db.execute(
        select(
            Product.id, Product.sku, Product.name,
            total_qty,
            func.count(func.distinct(StockMovement.id)),
        )
        .join(MovementLine, MovementLine.product_id == Product.id)
        .join(StockMovement, StockMovement.id == MovementLine.movement_id)
        .where(
            StockMovement.type == "ISSUE",
            StockMovement.status == "POSTED",
            StockMovement.posted_at >= since,
        )
        .group_by(Product.id, Product.sku, Product.name)
        .order_by(total_qty.desc())
        .limit(limit)
    )
    return ok([
        TopIssueProduct(product_id=pid, sku=sku, name=name, total_qty=float(qty or 0), issue_count=count)
        for pid, sku, name, qty, count in result.all()
    ])


@router.get("/dead-stock", response_model=ActionResult[List[DeadStockItem]])
async def dead_stock(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read")),
    days: int = Query(60, ge=1, le=3650),
    limit: int = Query(50, ge=1, le=500)) -> Any:
    """สินค้าที่มีของแต่ไม่เคลื่อนไหวเกิน N วัน (ไม่เคยเคลื่อนไหวนับจากวันสร้างสินค้า)"""
    now = datetime.utcnow()
    cutoff = now - timedelta(days=days)
    stock = await get_product_stock(db)
    last_moves = dict((await db.execute(
        select(MovementLine.product_id, func.max(StockMovement.posted_at))
        .join(StockMovement, StockMovement.id == MovementLine.movement_id)
        .where(StockMovement.status == "POSTED")
        .group_by(MovementLine.product_id)
    )).all())

    items = []
    for product_id, entry in stock.items():
        if entry["qty"] <= 0:
            continue
        product = entry["product"]
        last_movement_at = last_moves.get(product_id)
        reference = last_movement_at or product.created_at
        if reference >= cutoff:
            continue
        items.append(DeadStockItem(
            product_id=product_id,
            sku=product.sku,
            name=product.name,
            stock_qty=float(entry["qty"]),
            stock_value=float(entry["value"]),
            last_movement_at=last_movement_at,
            days_since_move=(now - reference).days))
    items.sort(key=lambda i: i.days_since_move, reverse=True)
    return ok(items[:limit])


@router.get("/supplier-lead-time", response_model=ActionResult[List[SupplierLeadTime]])
async def supplier_lead_time(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read"))) -> Any:
    grns = (await db.execute(
        select(GRN)
        .options(selectinload(GRN.po).selectinload(PurchaseOrder.supplier))
        .where(GRN.status == "POSTED", GRN.received_at.is_not(None))
    )).scalars().all()

    per_supplier: Dict[int, Tuple[str, List[int]]] = {}
    for grn in grns:
        supplier = grn.po.supplier
        name, lead_times = per_supplier.setdefault(supplier.id, (supplier.name, []))
        lead_times.append((grn.received_at - grn.po.created_at).days)

    items = [
        SupplierLeadTime(
            supplier_id=supplier_id,
            supplier_name=name,
            avg_lead_time_days=round(sum(lead_times) / len(lead_times), 1),
            min_lead_time_days=min(lead_times),
            max_lead_time_days=max(lead_times),
            grn_count=len(lead_times))
        for supplier_id, (name, lead_times) in per_supplier.items()
    ]
    items.sort(key=lambda i: i.avg_lead_time_days)
    return ok(items)


@router.get("/pr-po-cycle-time", response_model=ActionResult[CycleTimeReport])
async def pr_po_cycle_time(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read")),
    days: int = Query(90, ge=1, le=730)) -> Any:
    """ระยะเวลาจากสร้าง PR ถึงออก PO แรก"""
    since = datetime.utcnow() - timedelta(days=days)
    prs = (await db.execute(
        select(PurchaseRequisition)
        .options(selectinload(PurchaseRequisition.pos))
        .where(PurchaseRequisition.status == "CONVERTED", PurchaseRequisition.created_at >= since)
    )).scalars().all()

    distribution = {
        "same_day": 0, "one_day": 0, "two_to_three_days": 0,
        "four_to_seven_days": 0, "more_than_week": 0,
    }
    details = []
    for pr in prs:
        if not pr.pos:
            continue
        po = min(pr.pos, key=lambda p: p.created_at)
        cycle_days = max((po.created_at - pr.created_at).days, 0)
        distribution[cycle_time_bucket(cycle_days)] += 1
        details.append(CycleTimeDetail(
            pr_id=pr.id,
            pr_number=pr.pr_number,
            po_id=po.id,
            po_number=po.po_number,
            pr_created_at=pr.created_at,
            po_created_at=po.created_at,
            cycle_days=cycle_days))

    details.sort(key=lambda d: d.cycle_days, reverse=True)
    cycle_days = [d.cycle_days for d in details]
    return ok(CycleTimeReport(
        count=len(details),
        avg_days=round(sum(cycle_days) / len(cycle_days)) if cycle_days else 0,
        min_days=min(cycle_days) if cycle_days else 0,
        max_days=max(cycle_days) if cycle_days else 0,
        distribution=distribution,
        details=details))


@router.get("/forecast", response_model=ActionResult[List[ForecastItem]])
async def demand_forecast(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read")),
    months: int = Query(3, ge=1, le=24)) -> Any:
    """พยากรณ์ความต้องการเดือนหน้าจากค่าเฉลี่ยการเบิกรายเดือน"""
    starts = month_starts(datetime.utcnow().date(), months)
    index = {(s.year, s.month): i for i, s in enumerate(starts)}
    result = await db.execute(
        posted_issue_lines().where(StockMovement.posted_at >= datetime.combine(starts[0], time.min))
    )
    usage: Dict[int, List[float]] = defaultdict(lambda: [0.0] * months)
    for line, posted_at in result.all():
        i = index.get((posted_at.year, posted_at.month))
        if i is not None:
            usage[line.product_id][i] += float(line.qty)

    stock = await get_product_stock(db)
    items = []
    for product_id, entry in stock.items():
        product = entry["product"]
        rop = float(product.reorder_point or 0)
        if product_id not in usage and rop <= 0:
            continue
        monthly = usage.get(product_id, [0.0] * months)
        current_stock = float(entry["qty"])
        items.append(ForecastItem(
            product_id=product_id,
            sku=product.sku,
            name=product.name,
            current_stock=current_stock,
            reorder_point=rop,
            monthly_usage=monthly,
            **forecast_values(monthly, current_stock, rop)))
    items.sort(key=lambda i: i.days_of_supply)
    return ok(items)


@router.get("/order-summary", response_model=ActionResult[OrderSummaryReport])
async def order_summary(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read")),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    search: Optional[str] = Query(None, description="ค้นหาเลขที่คำสั่ง")) -> Any:
    """สรุปการเบิกออกตามเลขที่คำสั่งขาย/ผลิต หนึ่งบรรทัดเบิกต่อหนึ่งรายการ"""
    query = (
        select(MovementLine, StockMovement.doc_number, StockMovement.posted_at)
        .join(StockMovement, StockMovement.id == MovementLine.movement_id)
        .options(selectinload(MovementLine.product), selectinload(MovementLine.variant))
        .where(
            StockMovement.type == "ISSUE",
            StockMovement.status == "POSTED",
            MovementLine.order_ref.is_not(None),
            MovementLine.order_ref != "",
        )
        .order_by(StockMovement.posted_at.desc(), MovementLine.id)
    )
    if date_from:
        query = query.where(StockMovement.posted_at >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.where(StockMovement.posted_at <= datetime.combine(date_to, time.max))
    if search:
        query = query.where(MovementLine.order_ref.ilike(f"%{search}%"))

    groups: Dict[str, List[OrderSummaryItem]] = {}
    for line, doc_number, posted_at in (await db.execute(query)).all():
        groups.setdefault(line.order_ref, []).append(OrderSummaryItem(
            product_id=line.product_id,
            variant_id=line.variant_id,
            sku=line.variant.sku if line.variant else line.product.sku,
            name=line.product.name,
            variant_name=line.variant.name if line.variant else None,
            qty=float(line.qty),
            movement_doc_number=doc_number,
            issued_at=posted_at))

    orders = [
        OrderSummary(
            order_ref=order_ref,
            first_issue_at=min(i.issued_at for i in items),
            last_issue_at=max(i.issued_at for i in items),
            item_count=len(items),
            total_qty=sum(i.qty for i in items),
            items=items)
        for order_ref, items in groups.items()
    ]
    orders.sort(key=lambda o: o.last_issue_at, reverse=True)
    return ok(OrderSummaryReport(
        total_orders=len(orders),
        total_items=sum(o.item_count for o in orders),
        total_qty=sum(o.total_qty for o in orders),
        orders=orders))


def usage_trend(monthly_usage: List[float]) -> str:
    """เทียบค่าเฉลี่ยครึ่งหลังกับครึ่งแรก (ต่างกันเกิน 10%)"""
    half = len(monthly_usage) // 2
    first, second = monthly_usage[:half], monthly_usage[half:]
    first_avg = sum(first) / len(first) if first else 0
    second_avg = sum(second) / len(second) if second else 0
    if second_avg > first_avg * 1.1:
        return "up"
    if second_avg < first_avg * 0.9:
        return "down"
    return "stable"


def product_forecast_values(monthly_usage: List[float], current_stock: float) -> Dict[str, Any]:
    avg = sum(monthly_usage) / len(monthly_usage)
    recent = monthly_usage[-3:]
    forecast = sum(recent) / len(recent)
    daily = avg / 30
    return {
        "avg_monthly_usage": round(avg),
        "forecast_next_month": round(forecast),
        "days_of_supply": round(current_stock / daily) if daily > 0 else 999,
        # เป้าหมายสต๊อค 2 เดือน
        "suggested_order": max(0, round(forecast * 2 - current_stock)),
        "trend": usage_trend(monthly_usage),
    }


@router.get("/product-forecast", response_model=ActionResult[List[ProductForecast]])
async def product_forecast(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read")),
    months: int = Query(6, ge=1, le=24),
    category_id: Optional[int] = Query(None)) -> Any:
    """พยากรณ์รายสินค้าพร้อมแนวโน้ม เรียงตามจำนวนวันที่ของพอใช้ (เร่งด่วนก่อน)"""
    starts = month_starts(datetime.utcnow().date(), months)
    index = {(s.year, s.month): i for i, s in enumerate(starts)}
    result = await db.execute(
        posted_issue_lines().where(StockMovement.posted_at >= datetime.combine(starts[0], time.min))
    )
    usage: Dict[int, List[float]] = defaultdict(lambda: [0.0] * months)
    for line, posted_at in result.all():
        i = index.get((posted_at.year, posted_at.month))
        if i is not None:
            usage[line.product_id][i] += float(line.qty)

    stock = await get_product_stock(db)
    items = []
    for product_id, entry in stock.items():
        product = entry["product"]
        if category_id and product.category_id != category_id:
            continue
        monthly = usage.get(product_id, [0.0] * months)
        current_stock = float(entry["qty"])
        if sum(monthly) <= 0 and current_stock <= 0:
            continue
        items.append(ProductForecast(
            product_id=product_id,
            sku=product.sku,
            name=product.name,
            category=product.category.name if product.category else None,
            current_stock=current_stock,
            reorder_point=float(product.reorder_point or 0),
            monthly_usage=monthly,
            **product_forecast_values(monthly, current_stock)))
    items.sort(key=lambda i: i.days_of_supply)
    return ok(items)


@router.get("/usage-history/{product_id}", response_model=ActionResult[ProductUsageHistory])
async def product_usage_history(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read")),
    product_id: int,
    months: int = Query(12, ge=1, le=36)) -> Any:
    """ยอดรับเข้าและเบิกออกรายเดือนของสินค้า"""
    product = (await db.execute(
        select(Product)
        .options(selectinload(Product.category), selectinload(Product.stock_balances))
        .where(Product.id == product_id)
    )).scalar_one_or_none()
    if not product:
        raise NotFoundError("สินค้า")

    starts = month_starts(datetime.utcnow().date(), months)
    history = {(s.year, s.month): {"month": s.strftime("%Y-%m"), "receive": 0.0, "issue": 0.0} for s in starts}
    result = await db.execute(
        select(StockMovement.type, StockMovement.posted_at, MovementLine.qty)
        .join(MovementLine, MovementLine.movement_id == StockMovement.id)
        .where(
            MovementLine.product_id == product_id,
            StockMovement.status == "POSTED",
            StockMovement.type.in_(["RECEIVE", "ISSUE"]),
            StockMovement.posted_at >= datetime.combine(starts[0], time.min),
        )
    )
    for movement_type, posted_at, qty in result.all():
        bucket = history.get((posted_at.year, posted_at.month))
        if bucket is not None:
            bucket[movement_type.lower()] += float(qty)

    return ok(ProductUsageHistory(
        product=UsageHistoryProduct(
            id=product.id,
            sku=product.sku,
            name=product.name,
            category=product.category.name if product.category else None,
            current_stock=float(sum((b.qty_on_hand for b in product.stock_balances), ZERO)),
            reorder_point=float(product.reorder_point or 0)),
        history=[MonthlyUsage(**bucket) for bucket in history.values()]))


@router.get("/stock", response_model=ActionResult[StockReport])
async def stock_report(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read", "stock:read")),
    search: Optional[str] = Query(None, description="ค้นหา SKU / ชื่อสินค้า"),
    category_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    show_zero: bool = Query(False, description="แสดงรายการที่คงเหลือ 0")) -> Any:
    """ยอดคงเหลือรายตำแหน่งพร้อมมูลค่า (ต้นทุนล่าสุด)"""
    query = (
        select(StockBalance)
        .join(Product, Product.id == StockBalance.product_id)
        .join(Location, Location.id == StockBalance.location_id)
        .outerjoin(ProductVariant, ProductVariant.id == StockBalance.variant_id)
        .options(
            selectinload(StockBalance.product).selectinload(Product.category),
            selectinload(StockBalance.variant),
            selectinload(StockBalance.location).selectinload(Location.warehouse),
        )
        .order_by(Product.sku, Location.code)
    )
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            Product.sku.ilike(pattern),
            Product.name.ilike(pattern),
            ProductVariant.sku.ilike(pattern),
        ))
    if category_id:
        query = query.where(Product.category_id == category_id)
    if warehouse_id:
        query = query.where(Location.warehouse_id == warehouse_id)
    if not show_zero:
        query = query.where(StockBalance.qty_on_hand > 0)

    items = []
    for balance in (await db.execute(query)).scalars().all():
        qty = balance.qty_on_hand or ZERO
        cost = unit_cost_of(balance)
        product = balance.product
        items.append(StockReportRow(
            product_id=product.id,
            variant_id=balance.variant_id,
            sku=balance.variant.sku if balance.variant else product.sku,
            name=product.name,
            category=product.category.name if product.category else None,
            variant_name=balance.variant.name if balance.variant else None,
            warehouse_name=balance.location.warehouse.name,
            location_code=balance.location.code,
            qty_on_hand=float(qty),
            unit_cost=float(cost),
            stock_value=float(qty * cost)))
    return ok(StockReport(
        total_qty=sum(i.qty_on_hand for i in items),
        total_value=round(sum(i.stock_value for i in items), 2),
        items=items))


@router.get("/low-stock", response_model=ActionResult[List[LowStockItem]])
async def low_stock_report(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read", "stock:read")),
    category_id: Optional[int] = Query(None)) -> Any:
    return ok(await get_low_stock_items(db, stocked_only=False, category_id=category_id))


@router.get("/expiring", response_model=ActionResult[List[ExpiringLotResponse]])
async def expiring_report(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read", "stock:read")),
    days: int = Query(30, ge=1, le=365)) -> Any:
    return ok(await get_expiring_lots(db, days))
