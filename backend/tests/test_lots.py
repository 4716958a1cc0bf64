"""Lot: สร้าง ยอดคงเหลือรายตำแหน่ง และรายการใกล้หมดอายุ/หมดอายุ"""
from datetime import datetime, timedelta

V1 = "/api/v1"
API = f"{V1}/lots"


async def create_movement(client, headers, movement_type, lines):
    response = await client.post(f"{V1}/movements/", json={"type": movement_type, "lines": lines}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]


async def create_and_post(client, as_role, movement_type, lines):
    movement = await create_movement(client, as_role("INVENTORY"), movement_type, lines)
    for action, role in (("submit", "INVENTORY"), ("approve", "APPROVER"), ("post", "APPROVER")):
        response = await client.post(f"{V1}/movements/{movement['id']}/{action}", headers=as_role(role))
        assert response.status_code == 200, response.text
    return response.json()["data"]


async def create_lot(client, as_role, product_id, lot_number, expires_in_days=None):
    payload = {"lot_number": lot_number, "product_id": product_id}
    if expires_in_days is not None:
        payload["expiry_date"] = (datetime.utcnow() + timedelta(days=expires_in_days)).isoformat()
    response = await client.post(f"{API}/", json=payload, headers=as_role("INVENTORY"))
    assert response.status_code == 200, response.text
    return response.json()["data"]


async def test_duplicate_lot_number_per_product(client, seed, as_role):
    lot = await create_lot(client, as_role, seed.product_id, "L-2024-01")
    assert lot["lot_number"] == "L-2024-01"
    assert lot["total_qty_on_hand"] == 0

    response = await client.post(f"{API}/", json={
        "lot_number": " L-2024-01 ", "product_id": seed.product_id,
    }, headers=as_role("INVENTORY"))
    assert response.status_code == 409
    assert response.json()["error"] == "หมายเลข Lot นี้มีอยู่แล้วสำหรับสินค้านี้"

    # สินค้าอื่นใช้หมายเลขเดียวกันได้
    await create_lot(client, as_role, seed.product2_id, "L-2024-01")


async def test_expiry_before_manufacture_is_invalid(client, seed, as_role):
    response = await client.post(f"{API}/", json={
        "lot_number": "L-BAD",
        "product_id": seed.product_id,
        "manufactured_date": "2024-06-01T00:00:00",
        "expiry_date": "2024-05-01T00:00:00",
    }, headers=as_role("INVENTORY"))
    assert response.status_code == 400
    assert response.json()["error"] == "วันหมดอายุต้องไม่ก่อนวันผลิต"


async def test_posting_moves_lot_balances(client, seed, as_role):
    lot = await create_lot(client, as_role, seed.product_id, "L-A", expires_in_days=90)
    await create_and_post(client, as_role, "RECEIVE", [
        {"product_id": seed.product_id, "lot_id": lot["id"], "to_location_id": seed.loc_a, "qty": "10"},
    ])
    await create_and_post(client, as_role, "TRANSFER", [
        {"product_id": seed.product_id, "lot_id": lot["id"],
         "from_location_id": seed.loc_a, "to_location_id": seed.loc_b, "qty": "4"},
    ])

    detail = (await client.get(f"{API}/{lot['id']}", headers=as_role("VIEWER"))).json()["data"]
    assert detail["total_qty_on_hand"] == 10
    assert {b["location_code"]: b["qty"] for b in detail["balances"]} == {"A-01": 6, "B-01": 4}

    # สินค้ามีพอที่ A-01 แต่ Lot นี้ไม่พอ
    await create_and_post(client, as_role, "RECEIVE", [
        {"product_id": seed.product_id, "to_location_id": seed.loc_a, "qty": "20"},
    ])
    issue = await create_movement(client, as_role("INVENTORY"), "ISSUE", [
        {"product_id": seed.product_id, "lot_id": lot["id"], "from_location_id": seed.loc_a, "qty": "7"},
    ])
    await client.post(f"{V1}/movements/{issue['id']}/submit", headers=as_role("INVENTORY"))
    await client.post(f"{V1}/movements/{issue['id']}/approve", headers=as_role("APPROVER"))
    response = await client.post(f"{V1}/movements/{issue['id']}/post", headers=as_role("APPROVER"))
    assert response.status_code == 422
    assert response.json()["error"] == "Lot L-A มีไม่เพียงพอ (มี 6, ต้องการ 7)"

    detail = (await client.get(f"{API}/{lot['id']}", headers=as_role("VIEWER"))).json()["data"]
    assert {b["location_code"]: b["qty"] for b in detail["balances"]} == {"A-01": 6, "B-01": 4}


async def test_expiring_and_expired_lots(client, seed, as_role):
    soon = await create_lot(client, as_role, seed.product_id, "L-SOON", expires_in_days=10)
    later = await create_lot(client, as_role, seed.product_id, "L-LATER", expires_in_days=60)
    old = await create_lot(client, as_role, seed.product_id, "L-OLD", expires_in_days=-5)
    await create_lot(client, as_role, seed.product_id, "L-EMPTY", expires_in_days=5)
    await create_and_post(client, as_role, "RECEIVE", [
        {"product_id": seed.product_id, "lot_id": lot["id"], "to_location_id": seed.loc_a, "qty": "3"}
        for lot in (soon, later, old)
    ])

    response = await client.get(f"{API}/expiring", headers=as_role("VIEWER"))
    expiring = response.json()["data"]
    assert [lot["lot_number"] for lot in expiring] == ["L-SOON"]
    assert expiring[0]["days_until_expiry"] == 10
    assert expiring[0]["total_qty_on_hand"] == 3

    response = await client.get(f"{API}/expiring", params={"days": 90}, headers=as_role("VIEWER"))
    assert [lot["lot_number"] for lot in response.json()["data"]] == ["L-SOON", "L-LATER"]

    response = await client.get(f"{API}/expired", headers=as_role("VIEWER"))
    assert [lot["lot_number"] for lot in response.json()["data"]] == ["L-OLD"]
