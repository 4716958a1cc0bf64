"""ข้อมูลหลัก: หมวดหมู่ ผู้จัดจำหน่าย คลัง และตำแหน่งจัดเก็บ"""
from warehouse.models import Category, Location, Supplier, Warehouse

V1 = "/api/v1"


async def receive(client, as_role, product_id, location_id, qty="5"):
    response = await client.post(f"{V1}/movements/", json={
        "type": "RECEIVE",
        "lines": [{"product_id": product_id, "to_location_id": location_id, "qty": qty}],
    }, headers=as_role("INVENTORY"))
    movement = response.json()["data"]
    for action, role in (("submit", "INVENTORY"), ("approve", "APPROVER"), ("post", "APPROVER")):
        response = await client.post(f"{V1}/movements/{movement['id']}/{action}", headers=as_role(role))
        assert response.status_code == 200, response.text


async def test_category_in_use_cannot_be_deleted(client, seed, as_role, session_factory):
    headers = as_role("INVENTORY")
    response = await client.delete(f"{V1}/categories/{seed.category_id}", headers=headers)
    assert response.status_code == 422
    assert response.json()["error"] == "ไม่สามารถลบหมวดหมู่ที่มีสินค้าอยู่ได้"

    response = await client.post(f"{V1}/categories/", json={"name": "บรรจุภัณฑ์"}, headers=headers)
    assert response.status_code == 200, response.text
    unused = response.json()["data"]
    assert unused["products_count"] == 0

    response = await client.delete(f"{V1}/categories/{unused['id']}", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["message"] == "ลบหมวดหมู่เรียบร้อย"

    listed = (await client.get(f"{V1}/categories/", headers=as_role("VIEWER"))).json()["data"]
    assert [c["name"] for c in listed] == ["วัตถุดิบ"]
    async with session_factory() as db:
        deleted = await db.get(Category, unused["id"])
        assert deleted.deleted_at is not None


async def test_category_name_is_unique_ignoring_case(client, seed, as_role):
    headers = as_role("INVENTORY")
    response = await client.post(f"{V1}/categories/", json={"name": "Fabric"}, headers=headers)
    assert response.status_code == 200
    response = await client.post(f"{V1}/categories/", json={"name": " fabric "}, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"] == "ชื่อหมวดหมู่นี้มีอยู่แล้ว"


async def test_supplier_with_po_is_soft_deleted(client, seed, as_role, session_factory):
    headers = as_role("PURCHASING")
    response = await client.post(f"{V1}/po/", json={
        "supplier_id": seed.supplier_id,
        "lines": [{"product_id": seed.product_id, "qty": "1", "unit_price": "10"}],
    }, headers=headers)
    assert response.status_code == 200, response.text

    response = await client.delete(f"{V1}/suppliers/{seed.supplier_id}", headers=headers)
    assert response.status_code == 200
    response = await client.get(f"{V1}/suppliers/{seed.supplier_id}", headers=headers)
    assert response.status_code == 404
    assert response.json()["error"] == "ไม่พบผู้จัดจำหน่าย"

    response = await client.post(f"{V1}/suppliers/", json={"code": "SUP-002", "name": "ร้านใหม่"}, headers=headers)
    assert response.status_code == 200, response.text
    unused_id = response.json()["data"]["id"]
    response = await client.delete(f"{V1}/suppliers/{unused_id}", headers=headers)
    assert response.status_code == 200

    async with session_factory() as db:
        kept = await db.get(Supplier, seed.supplier_id)
        assert kept is not None
        assert kept.deleted_at is not None
        assert kept.active is False
        assert await db.get(Supplier, unused_id) is None


async def test_warehouse_with_stock_cannot_be_deleted(client, seed, as_role, session_factory):
    await receive(client, as_role, seed.product_id, seed.loc_a)
    headers = as_role("INVENTORY")

    response = await client.delete(f"{V1}/warehouses/{seed.warehouse_id}", headers=headers)
    assert response.status_code == 422
    assert response.json()["error"] == "ไม่สามารถลบคลังสินค้าที่มีสต๊อคอยู่ได้"

    response = await client.post(f"{V1}/warehouses/", json={"code": "WH-EMPTY", "name": "คลังว่าง"}, headers=headers)
    assert response.status_code == 200, response.text
    empty_id = response.json()["data"]["id"]
    response = await client.delete(f"{V1}/warehouses/{empty_id}", headers=headers)
    assert response.status_code == 200

    async with session_factory() as db:
        assert await db.get(Warehouse, seed.warehouse_id) is not None
        assert await db.get(Warehouse, empty_id) is None


async def test_location_with_stock_cannot_be_deleted(client, seed, as_role, session_factory):
    await receive(client, as_role, seed.product_id, seed.loc_a)
    headers = as_role("INVENTORY")

    response = await client.delete(f"{V1}/locations/{seed.loc_a}", headers=headers)
    assert response.status_code == 422
    assert response.json()["error"] == "ไม่สามารถลบตำแหน่งที่มีสต๊อคหรือประวัติการเคลื่อนไหวได้"

    response = await client.delete(f"{V1}/locations/{seed.loc_b}", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["message"] == "ลบตำแหน่งจัดเก็บเรียบร้อย"

    async with session_factory() as db:
        assert await db.get(Location, seed.loc_a) is not None
        assert await db.get(Location, seed.loc_b) is None
