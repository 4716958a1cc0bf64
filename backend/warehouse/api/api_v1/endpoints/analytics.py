"""สถิติและการวิเคราะห์สต๊อค"""

from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db, require_permission
from warehouse.models.movement import StockMovement, MovementLine
from warehouse.models.product import Product
from warehouse.models.purchase_order import PurchaseOrder, GRN
from warehouse.models.purchase_requisition import PurchaseRequisition
from warehouse.models.stock import StockBalance
from warehouse.models.user import User
from warehouse.schemas.analytics import (
    ABCItem, TurnoverItem, TrendPoint, CategoryPerformance, SupplierPerformance,
    DashboardData, DashboardAlerts, NamedValue, TopProduct
)
from warehouse.schemas.common import ActionResult, ok
from warehouse.services.alerts import get_low_stock_items, get_expiring_lots
from warehouse.api.api_v1.endpoints.stock import unit_cost_of

router = APIRouter()

ZERO = Decimal("0")
TREND_TYPES = ("RECEIVE", "ISSUE", "TRANSFER", "ADJUST", "RETURN")
NO_CATEGORY = "ไม่มีหมวดหมู่"


async def get_product_stock(db: AsyncSession) -> Dict[int, Dict[str, Any]]:
    """ยอดคงเหลือและมูลค่า (จำนวน × ต้นทุนล่าสุด) ต่อสินค้าที่ใช้งานอยู่"""
    products = (await db.execute(
        select(Product)
        .options(selectinload(Product.category))
        .where(Product.active.is_(True), Product.deleted_at.is_(None))
    )).scalars().all()
    stock = {
        p.id: {"product": p, "qty": ZERO, "value": ZERO}
        for p in products
    }
    balances = (await db.execute(
        select(StockBalance)
        .options(selectinload(StockBalance.product), selectinload(StockBalance.variant))
        .where(StockBalance.product_id.in_(list(stock.keys())))
    )).scalars().all() if stock else []
    for balance in balances:
        qty = balance.qty_on_hand or ZERO
        entry = stock[balance.product_id]
        entry["qty"] += qty
        entry["value"] += qty * unit_cost_of(balance)
    return stock


async def get_posted_qty_by_product(db: AsyncSession, movement_type: str, since: datetime) -> Dict[int, Decimal]:
    result = await db.execute(
        select(MovementLine.product_id, func.sum(MovementLine.qty))
        .join(StockMovement, StockMovement.id == MovementLine.movement_id)
        .where(
            StockMovement.type == movement_type,
            StockMovement.status == "POSTED",
            StockMovement.posted_at >= since,
        )
        .group_by(MovementLine.product_id)
    )
    return {row[0]: Decimal(str(row[1] or 0)) for row in result.all()}


def classify_abc(rows: List[Dict[str, Any]]) -> List[ABCItem]:
    """
    จัดกลุ่ม ABC ตามมูลค่าสต๊อค

    rows: {product_id, sku, name, qty, value} เฉพาะมูลค่า > 0
    สะสม ≤ 80% → A, ≤ 95% → B, ที่เหลือ → C
    """
    rows = sorted((r for r in rows if r["value"] > 0), key=lambda r: r["value"], reverse=True)
    total = sum((Decimal(str(r["value"])) for r in rows), ZERO)
    items = []
    cumulative = ZERO
    for row in rows:
        value = Decimal(str(row["value"]))
        percentage = value / total * 100 if total else ZERO
        cumulative += percentage
        if cumulative <= 80:
            abc_class = "A"
        elif cumulative <= 95:
            abc_class = "B"
        else:
            abc_class = "C"
        items.append(ABCItem(
            product_id=row["product_id"],
            sku=row["sku"],
            name=row["name"],
            stock_qty=float(row["qty"]),
            value=float(value),
            percentage=round(float(percentage), 2),
            cumulative_percentage=round(float(cumulative), 2),
            abc_class=abc_class))
    return items


def calculate_turnover(stock_qty, issued_qty, days: int) -> Dict[str, float]:
    """อัตราหมุนเวียนต่อปี และจำนวนวันที่สต๊อคพอใช้ (999 เมื่อไม่มีการใช้)"""
    stock_qty = float(stock_qty)
    issued_qty = float(issued_qty)
    annualized = issued_qty / days * 365 if days else 0
    turnover = annualized / stock_qty if stock_qty > 0 else 0
    avg_daily = issued_qty / days if days else 0
    days_of_stock = stock_qty / avg_daily if avg_daily > 0 else 999
    return {
        "turnover_ratio": round(turnover, 2),
        "avg_daily_usage": round(avg_daily, 2),
        "days_of_stock": round(days_of_stock, 1),
    }


@router.get("/abc", response_model=ActionResult[List[ABCItem]])
async def abc_analysis(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read"))) -> Any:
    stock = await get_product_stock(db)
    rows = [
        {"product_id": pid, "sku": e["product"].sku, "name": e["product"].name,
         "qty": e["qty"], "value": e["value"]}
        for pid, e in stock.items()
    ]
    return ok(classify_abc(rows))


@router.get("/turnover", response_model=ActionResult[List[TurnoverItem]])
async def turnover_analysis(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read")),
    days: int = Query(90, ge=1, le=730)) -> Any:
    stock = await get_product_stock(db)
    issued = await get_posted_qty_by_product(db, "ISSUE", datetime.utcnow() - timedelta(days=days))

    items = []
    for product_id, entry in stock.items():
        qty = entry["qty"]
        issued_qty = issued.get(product_id, ZERO)
        if qty <= 0 and issued_qty <= 0:
            continue
        product = entry["product"]
        items.append(TurnoverItem(
            product_id=product_id,
            sku=product.sku,
            name=product.name,
            current_stock=float(qty),
            issued_qty=float(issued_qty),
            **calculate_turnover(qty, issued_qty, days)))
    items.sort(key=lambda i: i.turnover_ratio, reverse=True)
    return ok(items)


@router.get("/trends", response_model=ActionResult[List[TrendPoint]])
async def movement_trends(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read")),
    days: int = Query(30, ge=1, le=365)) -> Any:
    """ยอดรวมรายวันของการเคลื่อนไหวที่บันทึกแล้ว แยกตามประเภท (มีครบทุกวัน)"""
    today = datetime.utcnow().date()
    start = today - timedelta(days=days - 1)
    result = await db.execute(
        select(StockMovement.posted_at, StockMovement.type, MovementLine.qty)
        .join(MovementLine, MovementLine.movement_id == StockMovement.id)
        .where(
            StockMovement.status == "POSTED",
            StockMovement.posted_at >= datetime.combine(start, datetime.min.time()),
        )
    )
    buckets: Dict[str, Dict[str, float]] = {
        (start + timedelta(days=i)).isoformat(): {t.lower(): 0.0 for t in TREND_TYPES}
        for i in range(days)
    }
    for posted_at, movement_type, qty in result.all():
        key = posted_at.date().isoformat()
        if key in buckets and movement_type in TREND_TYPES:
            buckets[key][movement_type.lower()] += abs(float(qty))
    return ok([TrendPoint(date=day, **values) for day, values in buckets.items()])


@router.get("/categories", response_model=ActionResult[List[CategoryPerformance]])
async def category_performance(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read"))) -> Any:
    stock = await get_product_stock(db)
    since = datetime.utcnow() - timedelta(days=90)
    line_counts = dict((await db.execute(
        select(MovementLine.product_id, func.count(MovementLine.id))
        .join(StockMovement, StockMovement.id == MovementLine.movement_id)
        .where(StockMovement.status == "POSTED", StockMovement.posted_at >= since)
        .group_by(MovementLine.product_id)
    )).all())

    groups: Dict[Optional[int], Dict[str, Any]] = {}
    for product_id, entry in stock.items():
        product = entry["product"]
        group = groups.setdefault(product.category_id, {
            "name": product.category.name if product.category else NO_CATEGORY,
            "products": 0, "value": ZERO, "movements": 0,
        })
        group["products"] += 1
        group["value"] += entry["value"]
        group["movements"] += line_counts.get(product_id, 0)

    items = [
        CategoryPerformance(
            category_id=category_id,
            category_name=g["name"],
            product_count=g["products"],
            stock_value=float(g["value"]),
            movement_count=g["movements"],
            avg_turnover=round(g["movements"] / g["products"], 2) if g["products"] else 0)
        for category_id, g in groups.items()
    ]
    items.sort(key=lambda i: i.stock_value, reverse=True)
    return ok(items)


@router.get("/suppliers", response_model=ActionResult[List[SupplierPerformance]])
async def supplier_performance(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("reports:read"))) -> Any:
    """
    ผลงานผู้จัดจำหน่ายจาก PO ที่รับสินค้าแล้ว

    คะแนนคุณภาพ = 100 − อัตราคืนของ โดยแบ่งยอดคืนของแต่ละสินค้าตามสัดส่วนที่รับจากแต่ละราย
    """
    pos = (await db.execute(
        select(PurchaseOrder)
        .options(
            selectinload(PurchaseOrder.supplier),
            selectinload(PurchaseOrder.grns).selectinload(GRN.lines),
        )
        .where(PurchaseOrder.status.in_(["PARTIALLY_RECEIVED", "FULLY_RECEIVED", "CLOSED"]))
    )).scalars().all()

    received_by_product: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    stats: Dict[int, Dict[str, Any]] = {}
    for po in pos:
        s = stats.setdefault(po.supplier_id, {
            "name": po.supplier.name, "pos": 0, "value": ZERO,
            "lead_times": [], "on_time": 0, "received": defaultdict(lambda: ZERO),
        })
        s["pos"] += 1
        s["value"] += po.total or ZERO
        posted = [g for g in po.grns if g.status == "POSTED" and g.received_at]
        if posted:
            first = min(g.received_at for g in posted)
            s["lead_times"].append((first - po.created_at).total_seconds() / 86400)
            if po.eta is None or first <= po.eta:
                s["on_time"] += 1
        for grn in posted:
            for line in grn.lines:
                s["received"][line.product_id] += line.qty_received
                received_by_product[line.product_id] += line.qty_received

    returned = await get_posted_qty_by_product(db, "RETURN", datetime.min)

    items = []
    for supplier_id, s in stats.items():
        supplier_received = sum(s["received"].values(), ZERO)
        supplier_returned = ZERO
        for product_id, qty in s["received"].items():
            total_received = received_by_product[product_id]
            if total_received > 0:
                supplier_returned += returned.get(product_id, ZERO) * qty / total_received
        return_rate = float(supplier_returned / supplier_received * 100) if supplier_received > 0 else 0
        lead_times = s["lead_times"]
        items.append(SupplierPerformance(
            supplier_id=supplier_id,
            supplier_name=s["name"],
            total_pos=s["pos"],
            total_value=float(s["value"]),
            avg_lead_time_days=round(sum(lead_times) / len(lead_times), 1) if lead_times else None,
            on_time_rate=round(s["on_time"] / len(lead_times) * 100, 1) if lead_times else 0,
            quality_score=round(max(0.0, 100 - return_rate), 1)))
    items.sort(key=lambda i: i.total_value, reverse=True)
    return ok(items)


@router.get("/dashboard", response_model=ActionResult[DashboardData])
async def get_dashboard(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read", "reports:read"))) -> Any:
    now = datetime.utcnow()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = today_start - timedelta(days=today_start.weekday())
    month_start = today_start.replace(day=1)

    stock = await get_product_stock(db)
    total_value = sum((e["value"] for e in stock.values()), ZERO)
    by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for entry in stock.values():
        product = entry["product"]
        by_category[product.category.name if product.category else NO_CATEGORY] += entry["value"]
    top_categories = sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)[:10]

    async def posted_count(since: datetime) -> int:
        return await db.scalar(
            select(func.count(StockMovement.id)).where(
                StockMovement.status == "POSTED",
                StockMovement.posted_at >= since,
            )
        ) or 0

    # อันดับสินค้าตามจำนวนบรรทัดการเคลื่อนไหวเดือนนี้
    movement_counts = (await db.execute(
        select(MovementLine.product_id, func.count(MovementLine.id).label("cnt"))
        .join(StockMovement, StockMovement.id == MovementLine.movement_id)
        .where(StockMovement.status == "POSTED", StockMovement.posted_at >= month_start)
        .group_by(MovementLine.product_id)
        .order_by(func.count(MovementLine.id).desc())
        .limit(5)
    )).all()
    movement_products = {}
    if movement_counts:
        result = await db.execute(select(Product).where(Product.id.in_([r[0] for r in movement_counts])))
        movement_products = {p.id: p for p in result.scalars().all()}

    top_by_value = sorted(stock.items(), key=lambda kv: kv[1]["value"], reverse=True)[:5]

    pending_prs = await db.scalar(
        select(func.count(PurchaseRequisition.id)).where(PurchaseRequisition.status == "SUBMITTED")
    )
    draft_pos = await db.scalar(
        select(func.count(PurchaseOrder.id)).where(PurchaseOrder.status == "DRAFT")
    )

    return ok(DashboardData(
        total_stock_value=float(total_value),
        stock_value_by_category=[NamedValue(name=name, value=float(value)) for name, value in top_categories],
        movements_today=await posted_count(today_start),
        movements_this_week=await posted_count(week_start),
        movements_this_month=await posted_count(month_start),
        alerts=DashboardAlerts(
            low_stock=len(await get_low_stock_items(db)),
            expiring_soon=len(await get_expiring_lots(db, 30)),
            pending_prs=pending_prs or 0,
            draft_pos=draft_pos or 0),
        top_products_by_value=[
            TopProduct(product_id=pid, sku=e["product"].sku, name=e["product"].name, value=float(e["value"]))
            for pid, e in top_by_value if e["value"] > 0
        ],
        top_products_by_movement=[
            TopProduct(product_id=pid, sku=movement_products[pid].sku, name=movement_products[pid].name, value=cnt)
            for pid, cnt in movement_counts if pid in movement_products
        ]))
