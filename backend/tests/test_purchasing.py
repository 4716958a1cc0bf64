"""ขอซื้อ → สั่งซื้อ → รับสินค้า"""
from decimal import Decimal

from sqlalchemy import select

from warehouse.models import Notification, POLine, StockMovement

V1 = "/api/v1"


async def approved_pr(client, seed, as_role, qty="30"):
    response = await client.post(f"{V1}/pr/", json={
        "priority": "HIGH",
        "note": "วัตถุดิบใกล้หมด",
        "lines": [{"product_id": seed.product_id, "qty": qty}],
    }, headers=as_role("REQUESTER"))
    assert response.status_code == 200, response.text
    pr = response.json()["data"]
    assert pr["status"] == "DRAFT"
    assert pr["pr_number"].startswith("PR")

    response = await client.post(f"{V1}/pr/{pr['id']}/submit", headers=as_role("REQUESTER"))
    assert response.json()["data"]["status"] == "SUBMITTED"
    response = await client.post(f"{V1}/pr/{pr['id']}/approve", headers=as_role("APPROVER"))
    assert response.json()["data"]["status"] == "APPROVED"
    return response.json()["data"]


async def sent_po(client, seed, as_role, pr_id=None, qty="30"):
    response = await client.post(f"{V1}/po/", json={
        "supplier_id": seed.supplier_id,
        "pr_id": pr_id,
        "vat_type": "EXCLUDED",
        "vat_rate": "7",
        "lines": [{"product_id": seed.product_id, "qty": qty, "unit_price": "100"}],
    }, headers=as_role("PURCHASING"))
    assert response.status_code == 200, response.text
    po = response.json()["data"]
    for action, role in (("submit", "PURCHASING"), ("approve", "APPROVER"), ("send", "PURCHASING")):
        response = await client.post(f"{V1}/po/{po['id']}/{action}", headers=as_role(role))
        assert response.status_code == 200, response.text
    po = response.json()["data"]
    assert po["status"] == "SENT"
    assert po["sent_at"] is not None
    return po


async def test_pr_to_po_to_partial_and_full_receipt(client, seed, as_role, session_factory):
    pr = await approved_pr(client, seed, as_role)
    po = await sent_po(client, seed, as_role, pr_id=pr["id"])
    assert po["pr_id"] == pr["id"]
    assert po["subtotal"] == 3000
    assert po["vat_amount"] == 210
    assert po["total"] == 3210

    converted = await client.get(f"{V1}/pr/{pr['id']}", headers=as_role("VIEWER"))
    assert converted.json()["data"]["status"] == "CONVERTED"
    assert converted.json()["data"]["po_ids"] == [po["id"]]

    po_line_id = po["lines"][0]["id"]
    response = await client.post(f"{V1}/grn/", json={
        "po_id": po["id"],
        "lines": [{"po_line_id": po_line_id, "location_id": seed.loc_a, "qty_received": "10"}],
    }, headers=as_role("INVENTORY"))
    assert response.status_code == 200, response.text
    grn = response.json()["data"]
    assert grn["status"] == "POSTED"
    assert grn["lines"][0]["unit_cost"] == 100
    assert grn["movement_id"] is not None

    detail = (await client.get(f"{V1}/po/{po['id']}", headers=as_role("VIEWER"))).json()["data"]
    assert detail["status"] == "PARTIALLY_RECEIVED"
    assert detail["lines"][0]["qty_received"] == 10
    assert detail["lines"][0]["qty_remaining"] == 20
    assert detail["timelines"][-1]["action"] == "รับสินค้าบางส่วน"

    balance = await client.get(
        f"{V1}/stock/balance", params={"product_id": seed.product_id, "location_id": seed.loc_a},
        headers=as_role("VIEWER"))
    assert balance.json()["data"]["qty_on_hand"] == 10

    response = await client.post(f"{V1}/grn/", json={
        "po_id": po["id"],
        "lines": [{"po_line_id": po_line_id, "location_id": seed.loc_b, "qty_received": "20"}],
    }, headers=as_role("PURCHASING"))
    assert response.status_code == 200, response.text

    detail = (await client.get(f"{V1}/po/{po['id']}", headers=as_role("VIEWER"))).json()["data"]
    assert detail["status"] == "FULLY_RECEIVED"
    assert detail["timelines"][-1]["action"] == "รับสินค้าครบ"
    assert len(detail["grns"]) == 2

    async with session_factory() as db:
        movements = (await db.execute(
            select(StockMovement).where(StockMovement.ref_type == "GRN")
        )).scalars().all()
        assert len(movements) == 2
        assert all(m.status == "POSTED" and m.type == "RECEIVE" for m in movements)

        received = (await db.execute(
            select(Notification).where(
                Notification.user_id == seed.users["PURCHASING"],
                Notification.type == "poReceived",
            )
        )).scalars().all()
        assert len(received) == 2

    response = await client.post(f"{V1}/po/{po['id']}/close", headers=as_role("PURCHASING"))
    assert response.json()["data"]["status"] == "CLOSED"


async def test_grn_cannot_exceed_remaining(client, seed, as_role):
    po = await sent_po(client, seed, as_role, qty="5")
    response = await client.post(f"{V1}/grn/", json={
        "po_id": po["id"],
        "lines": [{"po_line_id": po["lines"][0]["id"], "location_id": seed.loc_a, "qty_received": "6"}],
    }, headers=as_role("INVENTORY"))
    assert response.status_code == 422
    assert response.json()["error"] == "จำนวนรับเกินจำนวนคงค้าง"


async def test_draft_grn_posts_later(client, seed, as_role):
    po = await sent_po(client, seed, as_role, qty="5")
    response = await client.post(f"{V1}/grn/", json={
        "po_id": po["id"],
        "as_draft": True,
        "lines": [{"po_line_id": po["lines"][0]["id"], "location_id": seed.loc_a, "qty_received": "5"}],
    }, headers=as_role("INVENTORY"))
    grn = response.json()["data"]
    assert grn["status"] == "DRAFT"
    assert grn["movement_id"] is None

    response = await client.post(f"{V1}/grn/{grn['id']}/post", headers=as_role("INVENTORY"))
    assert response.status_code == 200, response.text
    assert response.json()["data"]["status"] == "POSTED"

    detail = (await client.get(f"{V1}/po/{po['id']}", headers=as_role("VIEWER"))).json()["data"]
    assert detail["status"] == "FULLY_RECEIVED"


async def test_po_requires_approved_pr(client, seed, as_role):
    response = await client.post(f"{V1}/pr/", json={
        "lines": [{"product_id": seed.product_id, "qty": "1"}],
    }, headers=as_role("REQUESTER"))
    pr = response.json()["data"]

    response = await client.post(f"{V1}/po/", json={
        "supplier_id": seed.supplier_id,
        "pr_id": pr["id"],
        "lines": [{"product_id": seed.product_id, "qty": "1", "unit_price": "10"}],
    }, headers=as_role("PURCHASING"))
    assert response.status_code == 422
    assert response.json()["error"] == "PR ต้องได้รับการอนุมัติก่อน"


async def test_rejected_pr_keeps_reason(client, seed, as_role):
    response = await client.post(f"{V1}/pr/", json={
        "lines": [{"product_id": seed.product_id, "qty": "2"}],
    }, headers=as_role("REQUESTER"))
    pr = response.json()["data"]
    await client.post(f"{V1}/pr/{pr['id']}/submit", headers=as_role("REQUESTER"))

    response = await client.post(
        f"{V1}/pr/{pr['id']}/reject", json={"reason": "งบประมาณไม่พอ"}, headers=as_role("APPROVER"))
    data = response.json()["data"]
    assert data["status"] == "REJECTED"
    assert data["rejected_reason"] == "งบประมาณไม่พอ"

    # แก้ไขและส่งใหม่ได้
    response = await client.put(f"{V1}/pr/{pr['id']}", json={
        "lines": [{"product_id": seed.product_id, "qty": "1"}],
    }, headers=as_role("REQUESTER"))
    assert response.status_code == 200
    response = await client.post(f"{V1}/pr/{pr['id']}/submit", headers=as_role("REQUESTER"))
    assert response.json()["data"]["status"] == "SUBMITTED"
    assert response.json()["data"]["rejected_reason"] is None


async def test_low_stock_suggestions_and_auto_pr(client, seed, as_role):
    response = await client.get(f"{V1}/pr/low-stock-suggestions", headers=as_role("PURCHASING"))
    assert response.status_code == 200
    suggestions = {s["product_id"]: s for s in response.json()["data"]}
    assert seed.product_id in suggestions
    assert suggestions[seed.product_id]["current_qty"] == 0

    response = await client.post(
        f"{V1}/pr/auto", json={"product_ids": [seed.product_id]}, headers=as_role("REQUESTER"))
    assert response.status_code == 200, response.text
    pr = response.json()["data"]
    assert pr["priority"] == "HIGH"
    assert [line["product_id"] for line in pr["lines"]] == [seed.product_id]


async def test_calculate_totals_endpoint(client, seed, as_role):
    response = await client.post(f"{V1}/po/calculate", json={
        "supplier_id": seed.supplier_id,
        "vat_type": "INCLUDED",
        "vat_rate": "7",
        "lines": [{"product_id": seed.product_id, "qty": "2", "unit_price": "53.50"}],
    }, headers=as_role("VIEWER"))
    assert response.status_code == 200
    assert response.json()["data"] == {"subtotal": 107.0, "vat_amount": 7.0, "total": 107.0}


async def test_sent_po_cannot_be_edited(client, seed, as_role):
    po = await sent_po(client, seed, as_role, qty="5")
    response = await client.put(f"{V1}/po/{po['id']}", json={
        "note": "แก้หลังส่ง",
        "lines": [{"product_id": seed.product_id, "qty": "6", "unit_price": "100"}],
    }, headers=as_role("PURCHASING"))
    assert response.status_code == 422
    assert response.json()["error"] == "ไม่สามารถแก้ไข PO ที่ไม่ใช่สถานะร่างหรือถูกปฏิเสธได้"

    detail = (await client.get(f"{V1}/po/{po['id']}", headers=as_role("VIEWER"))).json()["data"]
    assert detail["lines"][0]["qty"] == 5


async def test_po_with_open_grn_cannot_be_cancelled(client, seed, as_role):
    po = await sent_po(client, seed, as_role, qty="5")
    response = await client.post(f"{V1}/grn/", json={
        "po_id": po["id"],
        "as_draft": True,
        "lines": [{"po_line_id": po["lines"][0]["id"], "location_id": seed.loc_a, "qty_received": "2"}],
    }, headers=as_role("INVENTORY"))
    assert response.status_code == 200, response.text

    response = await client.post(
        f"{V1}/po/{po['id']}/cancel", json={"reason": "ผู้ขายไม่มีของ"}, headers=as_role("PURCHASING"))
    assert response.status_code == 422
    assert response.json()["error"] == "ไม่สามารถยกเลิก PO ที่มีการรับสินค้าแล้ว"

    detail = (await client.get(f"{V1}/po/{po['id']}", headers=as_role("VIEWER"))).json()["data"]
    assert detail["status"] == "SENT"


async def test_sent_po_without_grn_can_be_cancelled(client, seed, as_role):
    po = await sent_po(client, seed, as_role, qty="5")
    response = await client.post(
        f"{V1}/po/{po['id']}/cancel", json={"reason": "ผู้ขายไม่มีของ"}, headers=as_role("PURCHASING"))
    assert response.status_code == 200, response.text
    assert response.json()["data"]["status"] == "CANCELLED"

    again = await client.post(f"{V1}/po/{po['id']}/cancel", headers=as_role("PURCHASING"))
    assert again.status_code == 422
    assert again.json()["error"] == "ไม่สามารถยกเลิก PO ที่ปิดหรือยกเลิกแล้ว"


async def test_fractional_unit_price_is_kept(client, seed, as_role, session_factory):
    response = await client.post(f"{V1}/po/", json={
        "supplier_id": seed.supplier_id,
        "vat_type": "NO_VAT",
        "lines": [{"product_id": seed.product_id, "qty": "1", "unit_price": "0.125"}],
    }, headers=as_role("PURCHASING"))
    assert response.status_code == 200, response.text
    po = response.json()["data"]
    assert po["lines"][0]["unit_price"] == 0.125
    assert po["subtotal"] == 0.13

    async with session_factory() as db:
        line = await db.get(POLine, po["lines"][0]["id"])
        assert line.unit_price == Decimal("0.125")
