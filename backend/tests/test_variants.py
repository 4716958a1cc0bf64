"""ตัวเลือกสินค้าและ variant ผ่าน API"""
from sqlalchemy import select

from warehouse.models import OptionType, ProductVariant

V1 = "/api/v1"


def shirt(sku="SH-001"):
    return {"sku": sku, "name": "เสื้อยืด", "category_id": None, "item_type": "FINISHED_GOOD"}


async def test_create_product_with_selected_option_values(client, seed, as_role):
    headers = as_role("INVENTORY")
    response = await client.post(f"{V1}/options/types", json={"name": "สี", "values": ["แดง", "ดำ", " แดง "]}, headers=headers)
    assert response.status_code == 200, response.text
    color = response.json()["data"]
    assert [v["value"] for v in color["values"]] == ["แดง", "ดำ"]
    red, black = (v["id"] for v in color["values"])

    response = await client.post(f"{V1}/products/with-variants", json={
        "product": shirt(),
        "variants": [
            {"sku": "SH-001-RED", "name": "แดง", "option_value_ids": [red]},
            {"sku": "SH-001-BLK", "name": "ดำ", "option_value_ids": [black]},
        ],
    }, headers=headers)
    assert response.status_code == 200, response.text
    result = response.json()["data"]
    assert result["sku"] == "SH-001"
    assert len(result["variant_ids"]) == 2
    assert result["movement_id"] is None

    variants = (await client.get(f"{V1}/products/{result['product_id']}/variants", headers=as_role("VIEWER"))).json()["data"]
    assert [v["sku"] for v in variants] == ["SH-001-RED", "SH-001-BLK"]
    assert variants[0]["options"][0]["value"] == "แดง"
    assert variants[0]["options"][0]["option_type_name"] == "สี"

    response = await client.get(f"{V1}/variants/check-sku", params={"sku": "SH-001-RED"}, headers=as_role("VIEWER"))
    assert response.json()["data"]["exists"] is True


async def test_duplicate_variant_sku_is_rejected(client, seed, as_role):
    headers = as_role("INVENTORY")
    response = await client.post(f"{V1}/products/with-variants", json={
        "product": shirt(),
        "variants": [{"sku": "SH-X"}, {"sku": "SH-X"}],
    }, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"] == "SKU variant ซ้ำ: SH-X"

    response = await client.post(f"{V1}/products/with-variants", json={
        "product": shirt(), "variants": [{"sku": "SH-X"}],
    }, headers=headers)
    assert response.status_code == 200
    product_id = response.json()["data"]["product_id"]

    response = await client.post(f"{V1}/products/{product_id}/variants", json={"sku": "SH-X"}, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"] == "SKU variant ซ้ำ: SH-X"

    response = await client.post(f"{V1}/products/with-variants", json={
        "product": shirt("SH-002"), "variants": [{"sku": "SH-X"}],
    }, headers=headers)
    assert response.status_code == 409


async def test_inline_variants_reuse_option_types_ignoring_case(client, seed, as_role, session_factory):
    headers = as_role("INVENTORY")
    await client.post(f"{V1}/options/types", json={"name": "Size", "values": ["M"]}, headers=headers)

    response = await client.post(f"{V1}/products/with-inline-variants", json={
        "product": shirt(),
        "options": [{"name": "size", "values": ["m", "L"]}],
        "variants": [
            {"sku": "SH-001-M", "options": {"size": "m"}, "initial_qty": "4", "initial_location_id": seed.loc_a},
            {"sku": "SH-001-L", "options": {"SIZE": "L"}},
        ],
    }, headers=headers)
    assert response.status_code == 200, response.text
    result = response.json()["data"]
    assert result["movement_id"] is not None

    async with session_factory() as db:
        types = (await db.execute(select(OptionType))).scalars().all()
        assert [t.name for t in types] == ["Size"]
        variants = (await db.execute(
            select(ProductVariant).where(ProductVariant.product_id == result["product_id"]).order_by(ProductVariant.id)
        )).scalars().all()
        assert [v.name for v in variants] == ["M", "L"]

    medium = (await client.get(f"{V1}/variants/{result['variant_ids'][0]}", headers=as_role("VIEWER"))).json()["data"]
    assert medium["total_stock"] == 4


async def test_variant_with_stock_is_deactivated_not_removed(client, seed, as_role, session_factory):
    headers = as_role("INVENTORY")
    response = await client.post(f"{V1}/products/with-inline-variants", json={
        "product": shirt(),
        "variants": [
            {"sku": "SH-STOCK", "initial_qty": "2", "initial_location_id": seed.loc_a},
            {"sku": "SH-EMPTY"},
        ],
    }, headers=headers)
    stocked_id, empty_id = response.json()["data"]["variant_ids"]

    response = await client.delete(f"{V1}/variants/{stocked_id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["message"] == "ปิดการใช้งาน variant เรียบร้อย"
    response = await client.delete(f"{V1}/variants/{empty_id}", headers=headers)
    assert response.json()["data"]["message"] == "ลบ variant เรียบร้อย"

    response = await client.get(f"{V1}/variants/{stocked_id}", headers=as_role("VIEWER"))
    assert response.status_code == 404
    async with session_factory() as db:
        kept = await db.get(ProductVariant, stocked_id)
        assert kept is not None
        assert kept.active is False
        assert kept.deleted_at is not None
        assert await db.get(ProductVariant, empty_id) is None


async def test_option_names_and_values_are_unique_ignoring_case(client, seed, as_role):
    headers = as_role("INVENTORY")
    response = await client.post(f"{V1}/options/types", json={"name": "Color", "values": ["Red"]}, headers=headers)
    type_id = response.json()["data"]["id"]

    response = await client.post(f"{V1}/options/types", json={"name": "color "}, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"] == "ชื่อตัวเลือกนี้มีอยู่แล้ว"

    response = await client.post(f"{V1}/options/types/{type_id}/values", json={"value": "RED"}, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"] == "ค่านี้มีอยู่แล้วในตัวเลือกนี้"

    response = await client.post(f"{V1}/options/types/{type_id}/values", json={"value": "Blue"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["display_order"] == 1


async def test_option_type_in_use_cannot_be_deleted(client, seed, as_role):
    headers = as_role("INVENTORY")
    color = (await client.post(f"{V1}/options/types", json={"name": "สี", "values": ["แดง"]}, headers=headers)).json()["data"]
    await client.post(f"{V1}/products/with-variants", json={
        "product": shirt(),
        "variants": [{"sku": "SH-001-RED", "option_value_ids": [color["values"][0]["id"]]}],
    }, headers=headers)

    response = await client.delete(f"{V1}/options/types/{color['id']}", headers=headers)
    assert response.status_code == 422
    assert response.json()["error"] == "ไม่สามารถลบตัวเลือกที่มี variant ใช้งานอยู่ได้"

    unused = (await client.post(f"{V1}/options/types", json={"name": "ลาย"}, headers=headers)).json()["data"]
    response = await client.delete(f"{V1}/options/types/{unused['id']}", headers=headers)
    assert response.status_code == 200
