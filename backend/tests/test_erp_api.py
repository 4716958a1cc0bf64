"""ERP API: คีย์ โควตา สินค้า สต๊อค และการสร้างการเคลื่อนไหวจากระบบภายนอก"""
from warehouse.api.erp.deps import rate_limiter
from warehouse.models import ERPIntegration, Product

ERP = "/api/erp"


def erp_headers(seed):
    return {"X-API-Key": seed.api_key}


async def test_missing_or_unknown_key(client, seed):
    response = await client.get(ERP)
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Invalid or missing API key"}

    response = await client.get(ERP, headers={"X-API-Key": "not-a-key"})
    assert response.status_code == 401


async def test_inactive_integration_is_rejected(client, seed, session_factory):
    async with session_factory() as db:
        integration = await db.get(ERPIntegration, seed.integration_id)
        integration.active = False
        await db.commit()
    response = await client.get(ERP, headers=erp_headers(seed))
    assert response.status_code == 401


async def test_info_updates_last_sync(client, seed, session_factory):
    response = await client.get(ERP, headers=erp_headers(seed))
    assert response.status_code == 200
    assert response.json()["data"]["integration"] == "ERP ทดสอบ"
    async with session_factory() as db:
        integration = await db.get(ERPIntegration, seed.integration_id)
        assert integration.last_sync_at is not None


async def test_rate_limit(client, seed, monkeypatch):
    monkeypatch.setattr(rate_limiter, "limit", 2)
    for _ in range(2):
        assert (await client.get(ERP, headers=erp_headers(seed))).status_code == 200
    response = await client.get(ERP, headers=erp_headers(seed))
    assert response.status_code == 429
    assert response.json()["error"] == "Too many requests. Please try again later."


async def test_receive_then_issue_by_sku_and_location_code(client, seed):
    response = await client.post(f"{ERP}/receive", json={
        "reference": "SO-1001",
        "lines": [{"sku": "RM-001", "qty": "25", "to_location": "A-01", "unit_cost": "40"}],
    }, headers=erp_headers(seed))
    assert response.status_code == 200, response.text
    movement = response.json()["data"]
    assert movement["type"] == "RECEIVE"
    assert movement["status"] == "POSTED"
    assert movement["ref_type"] == "ERP"
    assert movement["lines"][0]["to_location"] == "A-01"

    response = await client.post(f"{ERP}/issue", json={
        "lines": [{"sku": "RM-001", "qty": "5", "from_location": "WH01/A-01", "order_ref": "SO-1001"}],
    }, headers=erp_headers(seed))
    assert response.status_code == 200, response.text
    assert response.json()["data"]["lines"][0]["order_ref"] == "SO-1001"

    response = await client.get(f"{ERP}/stock/RM-001", headers=erp_headers(seed))
    stock = response.json()["data"]
    assert stock["total_qty"] == 20
    assert stock["stock"][0]["location_code"] == "A-01"
    assert stock["stock"][0]["warehouse_code"] == "WH01"


async def test_issue_beyond_stock_fails(client, seed):
    response = await client.post(f"{ERP}/issue", json={
        "lines": [{"sku": "RM-002", "qty": "1", "from_location": "A-01"}],
    }, headers=erp_headers(seed))
    assert response.status_code == 422
    assert response.json()["success"] is False


async def test_movement_defaults_to_draft(client, seed):
    response = await client.post(f"{ERP}/movements", json={
        "type": "RECEIVE",
        "lines": [{"sku": "RM-002", "qty": "3", "to_location": "B-01", "lot_number": "LOT-001"}],
    }, headers=erp_headers(seed))
    assert response.status_code == 200, response.text
    movement = response.json()["data"]
    assert movement["status"] == "DRAFT"
    assert movement["lines"][0]["lot_number"] == "LOT-001"

    response = await client.get(f"{ERP}/movements", params={"status": "draft"}, headers=erp_headers(seed))
    listing = response.json()["data"]
    assert listing["pagination"]["total"] == 1
    assert listing["items"][0]["id"] == movement["id"]


async def test_unknown_sku_and_location(client, seed):
    response = await client.post(f"{ERP}/receive", json={
        "lines": [{"sku": "NOPE", "qty": "1", "to_location": "A-01"}],
    }, headers=erp_headers(seed))
    assert response.status_code == 404
    assert response.json()["error"] == "Product not found"

    response = await client.post(f"{ERP}/receive", json={
        "lines": [{"sku": "RM-001", "qty": "1", "to_location": "Z-99"}],
    }, headers=erp_headers(seed))
    assert response.status_code == 400
    assert response.json()["error"] == "Location not found: Z-99"


async def test_invalid_payload_is_400(client, seed):
    response = await client.post(f"{ERP}/movements", json={"type": "MOVE", "lines": []}, headers=erp_headers(seed))
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid request")


async def test_products_listing_and_soft_delete(client, seed, session_factory):
    response = await client.get(f"{ERP}/products", params={"category": "วัตถุดิบ"}, headers=erp_headers(seed))
    data = response.json()["data"]
    assert data["pagination"] == {"page": 1, "limit": 100, "total": 2, "total_pages": 1}
    assert [p["sku"] for p in data["items"]] == ["RM-001", "RM-002"]
    assert data["items"][0]["unit"] == "PCS"

    response = await client.get(f"{ERP}/products", params={"search": "ด้าย"}, headers=erp_headers(seed))
    assert [p["sku"] for p in response.json()["data"]["items"]] == ["RM-002"]

    response = await client.delete(f"{ERP}/products/{seed.product2_id}", headers=erp_headers(seed))
    assert response.status_code == 200
    assert response.json()["data"]["sku"] == "RM-002"
    async with session_factory() as db:
        product = await db.get(Product, seed.product2_id)
        assert product.deleted_at is not None

    response = await client.delete(f"{ERP}/products/{seed.product2_id}", headers=erp_headers(seed))
    assert response.status_code == 404
    assert response.json()["error"] == "Product not found"


async def test_low_stock_filter(client, seed):
    await client.post(f"{ERP}/receive", json={
        "lines": [
            {"sku": "RM-001", "qty": "5", "to_location": "A-01"},
            {"sku": "RM-002", "qty": "50", "to_location": "A-01"},
        ],
    }, headers=erp_headers(seed))
    response = await client.get(f"{ERP}/stock", params={"low_stock": True}, headers=erp_headers(seed))
    rows = response.json()["data"]
    assert [r["sku"] for r in rows] == ["RM-001"]
    assert rows[0]["is_low_stock"] is True

    response = await client.get(f"{ERP}/stock", params={"location": "B-01"}, headers=erp_headers(seed))
    assert response.json()["data"] == []
