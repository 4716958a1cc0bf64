"""ส่ง LINE/อีเมลหลัง commit และการตั้งค่าแจ้งเตือนของผู้ดูแล"""
import httpx
import pytest
from sqlalchemy import select

from warehouse.api.api_v1.endpoints import notifications as notification_endpoints
from warehouse.core.config import settings
from warehouse.models import NotificationDeliveryLog, UserNotificationPreference
from warehouse.services import notifications
from warehouse.services.notifications import deliver_outbox, dispatch_notification

V1 = "/api/v1"


@pytest.fixture
def line_outbox(monkeypatch):
    """เก็บข้อความ LINE ที่ถูกส่งแทนการเรียก API จริง"""
    sent = []

    async def record(token, line_user_id, text):
        sent.append((token, line_user_id, text))

    monkeypatch.setattr(notifications, "send_line_message", record)
    return sent


async def link_line(session_factory, user_id, line_user_id):
    async with session_factory() as db:
        db.add(UserNotificationPreference(user_id=user_id, preferences={}, line_user_id=line_user_id))
        await db.commit()


async def line_logs(db):
    result = await db.execute(
        select(NotificationDeliveryLog)
        .where(NotificationDeliveryLog.channel == "LINE")
        .order_by(NotificationDeliveryLog.id)
    )
    return result.scalars().all()


async def test_line_is_sent_only_after_commit(seed, session_factory, monkeypatch, line_outbox):
    monkeypatch.setattr(settings, "LINE_CHANNEL_ACCESS_TOKEN", "env-token")
    approver = seed.users["APPROVER"]
    await link_line(session_factory, approver, "U-approver")

    async with session_factory() as db:
        summary = await dispatch_notification(db, [approver], "prPending", "PR รออนุมัติ", "PR001", "/pr/1")
        assert summary["queued"] == 1
        await db.rollback()
        assert await deliver_outbox(db) == {"sent": 0, "failed": 0, "errors": []}
        assert line_outbox == []
        assert await line_logs(db) == []

        await dispatch_notification(db, [approver], "prPending", "PR รออนุมัติ", "PR002", "/pr/2")
        # ยังไม่ commit จึงยังไม่ส่ง
        assert await deliver_outbox(db) == {"sent": 0, "failed": 0, "errors": []}
        await db.commit()
        assert await deliver_outbox(db) == {"sent": 1, "failed": 0, "errors": []}

        token, recipient, text = line_outbox[0]
        assert (token, recipient) == ("env-token", "U-approver")
        assert text.startswith("PR รออนุมัติ\nPR002\n")
        assert text.endswith("/pr/2")

        logs = await line_logs(db)
        assert [(log.status, log.recipient) for log in logs] == [("SENT", "U-approver")]
        assert logs[0].sent_at is not None

        # ส่งแล้วไม่ส่งซ้ำ
        assert (await deliver_outbox(db))["sent"] == 0
    assert len(line_outbox) == 1


async def test_failed_line_send_is_logged(seed, session_factory, monkeypatch):
    monkeypatch.setattr(settings, "LINE_CHANNEL_ACCESS_TOKEN", "env-token")

    async def unreachable(token, line_user_id, text):
        raise httpx.ConnectError("เชื่อมต่อไม่ได้")

    monkeypatch.setattr(notifications, "send_line_message", unreachable)
    await link_line(session_factory, seed.users["APPROVER"], "U-approver")

    async with session_factory() as db:
        await dispatch_notification(db, [seed.users["APPROVER"]], "prPending", "PR รออนุมัติ", "PR001")
        await db.commit()
        result = await deliver_outbox(db)
        assert result["failed"] == 1
        assert result["errors"] == ["LINE:U-approver: เชื่อมต่อไม่ได้"]
        logs = await line_logs(db)
        assert logs[0].status == "FAILED"
        assert logs[0].error_message == "เชื่อมต่อไม่ได้"


async def test_request_delivers_line_after_response_commit(client, seed, as_role, session_factory,
                                                          monkeypatch, line_outbox):
    monkeypatch.setattr(settings, "LINE_CHANNEL_ACCESS_TOKEN", "env-token")
    await link_line(session_factory, seed.users["APPROVER"], "U-approver")

    response = await client.post(f"{V1}/pr/", json={
        "lines": [{"product_id": seed.product_id, "qty": "10"}],
    }, headers=as_role("REQUESTER"))
    pr = response.json()["data"]
    response = await client.post(f"{V1}/pr/{pr['id']}/submit", headers=as_role("REQUESTER"))
    assert response.status_code == 200

    assert [recipient for _, recipient, _ in line_outbox] == ["U-approver"]
    async with session_factory() as db:
        statuses = {(log.user_id, log.status) for log in await line_logs(db)}
    assert (seed.users["APPROVER"], "SENT") in statuses
    # ADMIN ยังไม่ได้เชื่อมต่อ LINE
    assert (seed.users["ADMIN"], "SKIPPED") in statuses


async def test_line_settings_mask_token(client, seed, as_role, line_outbox):
    headers = as_role("ADMIN")
    response = await client.get(f"{V1}/notifications/line-settings", headers=headers)
    data = response.json()["data"]
    assert data["has_token"] is False
    assert data["channel_access_token"] is None
    assert data["notify_movement_posted"] is False

    response = await client.put(f"{V1}/notifications/line-settings", json={
        "channel_access_token": "abcd1234efgh5678",
        "recipient_user_ids": ["C-group"],
        "notify_pr_pending": False,
    }, headers=headers)
    data = response.json()["data"]
    assert data["channel_access_token"] == "abcd...5678"
    assert data["has_token"] is True
    assert data["recipient_user_ids"] == ["C-group"]
    assert data["notify_pr_pending"] is False
    assert data["notify_low_stock"] is True

    response = await client.get(f"{V1}/notifications/line-settings", headers=as_role("INVENTORY"))
    assert response.status_code == 403

    # สรุปสินค้าใกล้หมดส่งถึงกลุ่มส่วนกลางด้วย
    response = await client.post(f"{V1}/notifications/cron-settings/low-stock/run", headers=headers)
    summary = response.json()["data"]
    assert summary["items"] == 2
    assert summary["queued"] == 1
    assert line_outbox[0][:2] == ("abcd1234efgh5678", "C-group")


async def test_line_connection_check(client, seed, as_role, monkeypatch):
    headers = as_role("ADMIN")
    response = await client.post(f"{V1}/notifications/line-settings/test", json={}, headers=headers)
    assert response.status_code == 422
    assert response.json()["error"] == "ไม่พบ Channel Access Token"

    checked = []

    async def bot_info(token):
        checked.append(token)
        return "บอทคลังสินค้า"

    monkeypatch.setattr(notification_endpoints, "check_line_connection", bot_info)
    await client.put(f"{V1}/notifications/line-settings", json={"channel_access_token": "stored-token"}, headers=headers)

    response = await client.post(f"{V1}/notifications/line-settings/test", json={}, headers=headers)
    assert response.json()["data"]["message"] == "เชื่อมต่อสำเร็จ! Bot: บอทคลังสินค้า"
    response = await client.post(
        f"{V1}/notifications/line-settings/test", json={"channel_access_token": "new-token"}, headers=headers)
    assert response.status_code == 200
    assert checked == ["stored-token", "new-token"]


async def test_cron_settings_update_and_run(client, seed, as_role):
    headers = as_role("ADMIN")
    response = await client.get(f"{V1}/notifications/cron-settings", headers=headers)
    jobs = {job["id"]: job for job in response.json()["data"]}
    assert set(jobs) == {"pending-actions", "low-stock", "expiring-stock"}
    assert jobs["pending-actions"]["days_display"] == "จันทร์-ศุกร์"
    assert jobs["low-stock"]["days_display"] == "ทุกวัน"
    assert jobs["low-stock"]["last_run"] is None

    response = await client.put(f"{V1}/notifications/cron-settings", json={
        "jobs": {"low-stock": {"hour": 7, "minute": 15, "days": [5, 1, 3], "enabled": False}},
    }, headers=headers)
    assert response.status_code == 200, response.text
    jobs = {job["id"]: job for job in response.json()["data"]}
    assert (jobs["low-stock"]["hour"], jobs["low-stock"]["minute"]) == (7, 15)
    assert jobs["low-stock"]["enabled"] is False
    assert jobs["low-stock"]["days_display"] == "จันทร์, พุธ, ศุกร์"
    assert jobs["expiring-stock"]["enabled"] is True

    response = await client.post(f"{V1}/notifications/cron-settings/low-stock/run", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["items"] == 2

    response = await client.get(f"{V1}/notifications/cron-settings", headers=headers)
    low_stock = next(job for job in response.json()["data"] if job["id"] == "low-stock")
    assert low_stock["last_status"] == "success"
    assert low_stock["last_run"] is not None
    assert low_stock["hour"] == 7


async def test_cron_settings_are_validated(client, seed, as_role):
    headers = as_role("ADMIN")
    response = await client.put(
        f"{V1}/notifications/cron-settings", json={"jobs": {"nightly": {"hour": 1}}}, headers=headers)
    assert response.status_code == 422
    assert response.json()["error"] == "ไม่พบ Cron Job นี้"

    response = await client.put(
        f"{V1}/notifications/cron-settings", json={"jobs": {"low-stock": {"days": [7]}}}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "วันที่เลือกไม่ถูกต้อง"

    response = await client.put(
        f"{V1}/notifications/cron-settings", json={"jobs": {"low-stock": {"hour": 24}}}, headers=headers)
    assert response.status_code == 400

    response = await client.post(f"{V1}/notifications/cron-settings/nightly/run", headers=headers)
    assert response.status_code == 422
    assert response.json()["error"] == "ไม่พบ Cron Job นี้"

    response = await client.put(
        f"{V1}/notifications/cron-settings", json={"jobs": {}}, headers=as_role("APPROVER"))
    assert response.status_code == 403
