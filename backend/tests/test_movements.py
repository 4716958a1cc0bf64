"""การเคลื่อนไหวสต๊อค: สร้าง ส่ง อนุมัติ บันทึก กลับรายการ คืนของ และทำแบบกลุ่ม"""
from decimal import Decimal

from sqlalchemy import select

from warehouse.models import AuditLog, Product

API = "/api/v1/movements"


async def create_movement(client, headers, movement_type, lines, note=None):
    response = await client.post(f"{API}/", json={"type": movement_type, "note": note, "lines": lines}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]


async def create_and_post(client, as_role, movement_type, lines):
    movement = await create_movement(client, as_role("INVENTORY"), movement_type, lines)
    for action, role in (("submit", "INVENTORY"), ("approve", "APPROVER"), ("post", "APPROVER")):
        response = await client.post(f"{API}/{movement['id']}/{action}", headers=as_role(role))
        assert response.status_code == 200, response.text
    return response.json()["data"]


async def balance_of(client, as_role, product_id, location_id):
    response = await client.get(
        "/api/v1/stock/balance",
        params={"product_id": product_id, "location_id": location_id},
        headers=as_role("VIEWER"),
    )
    if response.status_code == 404:
        return 0
    return response.json()["data"]["qty_on_hand"]


async def test_receive_workflow_updates_stock(client, seed, as_role, session_factory):
    movement = await create_movement(
        client, as_role("INVENTORY"), "RECEIVE",
        [{"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "50", "unit_cost": "12.50"}],
    )
    assert movement["status"] == "DRAFT"
    assert movement["doc_number"].startswith("MOV")
    assert len(movement["lines"]) == 1

    submitted = await client.post(f"{API}/{movement['id']}/submit", headers=as_role("INVENTORY"))
    assert submitted.json()["data"]["status"] == "SUBMITTED"
    approved = await client.post(f"{API}/{movement['id']}/approve", headers=as_role("APPROVER"))
    assert approved.json()["data"]["status"] == "APPROVED"
    assert approved.json()["data"]["approved_by_id"] == seed.users["APPROVER"]
    posted = await client.post(f"{API}/{movement['id']}/post", headers=as_role("APPROVER"))
    assert posted.status_code == 200
    assert posted.json()["data"]["status"] == "POSTED"

    assert await balance_of(client, as_role, seed.product_id, seed.loc_a) == 50

    async with session_factory() as db:
        product = await db.get(Product, seed.product_id)
        assert product.last_cost == Decimal("12.50")
        actions = (await db.execute(
            select(AuditLog.action).where(AuditLog.ref_type == "MOVEMENT", AuditLog.ref_id == movement["id"])
        )).scalars().all()
        assert {"CREATE", "SUBMIT", "APPROVE", "POST"} <= set(actions)


async def test_issue_more_than_on_hand_is_rejected_atomically(client, seed, as_role):
    await create_and_post(client, as_role, "RECEIVE", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "10"},
        {"product_id": seed.product2_id, "to_location_id": seed.loc_a, "qty": "10"},
    ])
    issue = await create_movement(client, as_role("INVENTORY"), "ISSUE", [
        {"product_id": seed.product2_id, "from_location_id": seed.loc_a, "qty": "3"},
        {"product_id": seed.product_id, "from_location_id": seed.loc_a, "qty": "15"},
    ])
    await client.post(f"{API}/{issue['id']}/submit", headers=as_role("INVENTORY"))
    await client.post(f"{API}/{issue['id']}/approve", headers=as_role("APPROVER"))

    response = await client.post(f"{API}/{issue['id']}/post", headers=as_role("APPROVER"))
    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert "มีไม่เพียงพอ" in body["error"]

    # บรรทัดแรกที่ผ่านแล้วต้องไม่ถูกบันทึก
    assert await balance_of(client, as_role, seed.product2_id, seed.loc_a) == 10
    assert await balance_of(client, as_role, seed.product_id, seed.loc_a) == 10
    detail = await client.get(f"{API}/{issue['id']}", headers=as_role("VIEWER"))
    assert detail.json()["data"]["status"] == "APPROVED"


async def test_transfer_moves_between_locations(client, seed, as_role):
    await create_and_post(client, as_role, "RECEIVE", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "10"},
    ])
    await create_and_post(client, as_role, "TRANSFER", [
        {"product_id": seed.product_id, "from_location_id": seed.loc_a, "to_location_id": seed.loc_b, "qty": "4"},
    ])
    assert await balance_of(client, as_role, seed.product_id, seed.loc_a) == 6
    assert await balance_of(client, as_role, seed.product_id, seed.loc_b) == 4


async def test_line_validation(client, seed, as_role):
    headers = as_role("INVENTORY")
    response = await client.post(f"{API}/", json={"type": "RECEIVE", "lines": []}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "กรุณาเพิ่มรายการสินค้า"

    response = await client.post(f"{API}/", json={
        "type": "RECEIVE",
        "lines": [{"product_id": seed.product_id, "qty": "5"}],
    }, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "รายการที่ 1: กรุณาระบุตำแหน่งปลายทาง"

    response = await client.post(f"{API}/", json={"type": "SCRAP", "lines": []}, headers=headers)
    assert response.status_code == 400
    assert response.json()["success"] is False


async def test_status_rules(client, seed, as_role):
    movement = await create_movement(client, as_role("INVENTORY"), "RECEIVE", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "1"},
    ])
    response = await client.post(f"{API}/{movement['id']}/approve", headers=as_role("APPROVER"))
    assert response.status_code == 422
    assert response.json()["error"] == "ไม่สามารถอนุมัติรายการที่ไม่ใช่ Submitted ได้"

    await client.post(f"{API}/{movement['id']}/submit", headers=as_role("INVENTORY"))
    response = await client.delete(f"{API}/{movement['id']}", headers=as_role("INVENTORY"))
    assert response.status_code == 422
    assert response.json()["error"] == "ลบได้เฉพาะรายการที่เป็นฉบับร่างเท่านั้น"

    response = await client.post(
        f"{API}/{movement['id']}/reject", json={"reason": "จำนวนไม่ถูกต้อง"}, headers=as_role("APPROVER"))
    data = response.json()["data"]
    assert data["status"] == "REJECTED"
    assert "[ปฏิเสธ] จำนวนไม่ถูกต้อง" in data["note"]


async def test_posted_movement_cannot_be_cancelled(client, seed, as_role):
    movement = await create_and_post(client, as_role, "RECEIVE", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "2"},
    ])
    response = await client.post(f"{API}/{movement['id']}/cancel", headers=as_role("INVENTORY"))
    assert response.status_code == 422
    assert response.json()["error"] == "ไม่สามารถยกเลิกรายการที่ลงบัญชีแล้ว"


async def test_reverse_creates_single_opposite_draft(client, seed, as_role):
    movement = await create_and_post(client, as_role, "RECEIVE", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "8"},
    ])
    response = await client.post(f"{API}/{movement['id']}/reverse", headers=as_role("INVENTORY"))
    assert response.status_code == 200
    reversal = response.json()["data"]
    assert reversal["type"] == "ISSUE"
    assert reversal["status"] == "DRAFT"
    assert reversal["ref_type"] == "REVERSAL"
    assert reversal["ref_id"] == movement["id"]
    assert reversal["lines"][0]["from_location_id"] == seed.loc_a

    again = await client.post(f"{API}/{movement['id']}/reverse", headers=as_role("INVENTORY"))
    assert again.status_code == 422
    assert again.json()["error"] == "รายการนี้ถูกกลับรายการแล้ว"

    detail = await client.get(f"{API}/{movement['id']}", headers=as_role("VIEWER"))
    assert [m["id"] for m in detail.json()["data"]["linked_movements"]] == [reversal["id"]]


async def test_return_from_issue_tracks_remaining(client, seed, as_role):
    await create_and_post(client, as_role, "RECEIVE", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "20"},
    ])
    issue = await create_and_post(client, as_role, "ISSUE", [
        {"product_id": seed.product_id, "from_location_id": seed.loc_a, "qty": "10"},
    ])
    line_id = issue["lines"][0]["id"]

    response = await client.post(
        f"{API}/{issue['id']}/return", json={"lines": [{"line_id": line_id, "qty": "4"}]},
        headers=as_role("INVENTORY"))
    assert response.status_code == 200
    returned = response.json()["data"]
    assert returned["type"] == "RETURN"
    assert returned["ref_type"] == "RETURN_FROM"
    assert returned["lines"][0]["to_location_id"] == seed.loc_a

    returnable = await client.get(f"{API}/{issue['id']}/returnable", headers=as_role("VIEWER"))
    assert returnable.json()["data"][0]["returned_qty"] == 4
    assert returnable.json()["data"][0]["remaining_qty"] == 6

    response = await client.post(
        f"{API}/{issue['id']}/return", json={"lines": [{"line_id": line_id, "qty": "7"}]},
        headers=as_role("INVENTORY"))
    assert response.status_code == 422


async def test_batch_approve_reports_each_item(client, seed, as_role):
    line = [{"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "1"}]
    first = await create_movement(client, as_role("INVENTORY"), "RECEIVE", line)
    second = await create_movement(client, as_role("INVENTORY"), "RECEIVE", line)
    draft = await create_movement(client, as_role("INVENTORY"), "RECEIVE", line)
    for movement in (first, second):
        await client.post(f"{API}/{movement['id']}/submit", headers=as_role("INVENTORY"))

    response = await client.post(
        f"{API}/batch/approve", json={"ids": [first["id"], second["id"], draft["id"], 9999]},
        headers=as_role("APPROVER"))
    assert response.status_code == 200
    result = response.json()["data"]
    assert result["total"] == 4
    assert result["succeeded"] == 2
    assert result["failed"] == 2
    errors = {r["id"]: r["error"] for r in result["results"] if not r["success"]}
    assert errors[9999] == "ไม่พบรายการ"
    assert errors[draft["id"]] == "ไม่สามารถอนุมัติรายการที่ไม่ใช่ Submitted ได้"

    response = await client.post(
        f"{API}/batch/post", json={"ids": [first["id"], second["id"]]}, headers=as_role("APPROVER"))
    assert response.json()["data"]["succeeded"] == 2
    assert await balance_of(client, as_role, seed.product_id, seed.loc_a) == 2


async def test_batch_requires_selection(client, seed, as_role):
    response = await client.post(f"{API}/batch/approve", json={"ids": []}, headers=as_role("APPROVER"))
    assert response.status_code == 400
    assert response.json()["error"] == "กรุณาเลือกรายการที่ต้องการอนุมัติ"

    response = await client.post(f"{API}/batch/cancel", json={"ids": list(range(1, 52))}, headers=as_role("INVENTORY"))
    assert response.status_code == 400
    assert response.json()["error"] == "เลือกได้สูงสุด 50 รายการ"


async def test_identity_and_permissions(client, seed, as_role):
    response = await client.get(f"{API}/")
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "กรุณาเข้าสู่ระบบ"}

    response = await client.post(f"{API}/", json={"type": "RECEIVE", "lines": []}, headers=as_role("VIEWER"))
    assert response.status_code == 403
    assert response.json()["error"] == "คุณไม่มีสิทธิ์ดำเนินการนี้"


async def test_negative_adjust_reduces_stock(client, seed, as_role):
    await create_and_post(client, as_role, "RECEIVE", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "10"},
    ])
    adjusted = await create_and_post(client, as_role, "ADJUST", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "-3"},
    ])
    assert adjusted["status"] == "POSTED"
    assert adjusted["lines"][0]["qty"] == -3
    assert await balance_of(client, as_role, seed.product_id, seed.loc_a) == 7

    # ปรับลดเกินยอดคงเหลือไม่ได้
    too_much = await create_movement(client, as_role("INVENTORY"), "ADJUST", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "-8"},
    ])
    await client.post(f"{API}/{too_much['id']}/submit", headers=as_role("INVENTORY"))
    await client.post(f"{API}/{too_much['id']}/approve", headers=as_role("APPROVER"))
    response = await client.post(f"{API}/{too_much['id']}/post", headers=as_role("APPROVER"))
    assert response.status_code == 422
    assert "มีไม่เพียงพอ" in response.json()["error"]
    assert await balance_of(client, as_role, seed.product_id, seed.loc_a) == 7


async def test_zero_adjust_is_invalid(client, seed, as_role):
    response = await client.post(f"{API}/", json={
        "type": "ADJUST",
        "lines": [{"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "0"}],
    }, headers=as_role("INVENTORY"))
    assert response.status_code == 400
    assert response.json()["error"] == "รายการที่ 1: จำนวนปรับปรุงต้องไม่เป็น 0"


async def test_history_by_product_lists_posted_only(client, seed, as_role):
    await create_and_post(client, as_role, "RECEIVE", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "10"},
        {"product_id": seed.product2_id, "to_location_id": seed.loc_a, "qty": "5"},
    ])
    issue = await create_and_post(client, as_role, "ISSUE", [
        {"product_id": seed.product_id, "from_location_id": seed.loc_a, "qty": "4"},
    ])
    await create_movement(client, as_role("INVENTORY"), "ISSUE", [
        {"product_id": seed.product_id, "from_location_id": seed.loc_a, "qty": "1"},
    ])

    response = await client.get(
        f"{API}/by-variant", params={"product_id": seed.product_id}, headers=as_role("VIEWER"))
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["total"] == 2
    entries = {e["type"]: e for e in data["items"]}
    assert set(entries) == {"RECEIVE", "ISSUE"}
    assert entries["ISSUE"]["id"] == issue["id"]
    assert entries["ISSUE"]["qty"] == 4
    assert entries["ISSUE"]["from_location_code"] == "A-01"
    assert entries["RECEIVE"]["to_location_code"] == "A-01"
    assert entries["RECEIVE"]["from_location_code"] is None


async def test_issued_list_shows_returnable_docs(client, seed, as_role):
    await create_and_post(client, as_role, "RECEIVE", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "20"},
    ])
    partly = await create_and_post(client, as_role, "ISSUE", [
        {"product_id": seed.product_id, "from_location_id": seed.loc_a, "qty": "5"},
    ])
    fully = await create_and_post(client, as_role, "ISSUE", [
        {"product_id": seed.product_id, "from_location_id": seed.loc_a, "qty": "3"},
    ])
    for issue, qty in ((partly, "2"), (fully, "3")):
        response = await client.post(
            f"{API}/{issue['id']}/return",
            json={"lines": [{"line_id": issue["lines"][0]["id"], "qty": qty}]},
            headers=as_role("INVENTORY"))
        assert response.status_code == 200, response.text

    response = await client.get(f"{API}/issued", headers=as_role("VIEWER"))
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["total"] == 1
    issued = data["items"][0]
    assert issued["id"] == partly["id"]
    assert issued["lines"][0]["issued_qty"] == 5
    assert issued["lines"][0]["returned_qty"] == 2
    assert issued["lines"][0]["remaining_qty"] == 3

    response = await client.get(
        f"{API}/issued", params={"search": "ไม่มีเอกสารนี้"}, headers=as_role("VIEWER"))
    assert response.json()["data"]["total"] == 0
