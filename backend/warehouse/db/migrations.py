"""
ปรับโครงสร้างฐานข้อมูลตอนเริ่มระบบ

ตรวจคอลัมน์ที่เพิ่มในเวอร์ชันหลัง ๆ ทุกครั้งที่เริ่ม ไม่พึ่งเลขเวอร์ชันอย่างเดียว
และสร้างข้อมูลพื้นฐาน (ตัวนับเลขที่เอกสาร) ถ้ายังไม่มี
"""

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.services.doc_numbers import ensure_doc_sequences

logger = logging.getLogger(__name__)

CURRENT_DB_VERSION = "1.4.0"

# (ตาราง, คอลัมน์, ชนิด, ค่าเริ่มต้น)
REQUIRED_COLUMNS = [
    ("movement_lines", "order_ref", "VARCHAR(100)", None),
    ("products", "item_type", "VARCHAR(20)", "'FINISHED_GOOD'"),
    ("products", "stock_type", "VARCHAR(20)", "'STOCKED'"),
    ("products", "last_cost", "DECIMAL(18,4)", "0"),
    ("product_variants", "stock_type", "VARCHAR(20)", "'STOCKED'"),
    ("product_variants", "low_stock_alert", "BOOLEAN", "1"),
    ("product_variants", "last_cost", "DECIMAL(18,4)", "0"),
    ("user_notification_preferences", "line_user_id", "VARCHAR(100)", None),
    ("notification_delivery_logs", "recipient", "VARCHAR(200)", None),
    ("notification_delivery_logs", "url", "VARCHAR(300)", None),
]


async def ensure_system_config_table(db: AsyncSession) -> None:
    await db.execute(text("""
        CREATE TABLE IF NOT EXISTS system_config (
            key TEXT PRIMARY KEY,
            value TEXT,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """))
    await db.commit()


async def get_db_version(db: AsyncSession) -> Optional[str]:
    result = await db.execute(text(
        "SELECT value FROM system_config WHERE key = 'db_version'"
    ))
    row = result.fetchone()
    return row[0] if row else None


async def set_db_version(db: AsyncSession, version: str) -> None:
    await db.execute(text(
        "INSERT OR REPLACE INTO system_config (key, value) VALUES ('db_version', :version)"
    ), {"version": version})
    await db.commit()


async def check_table_exists(db: AsyncSession, table: str) -> bool:
    result = await db.execute(text(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=:table"
    ), {"table": table})
    return result.fetchone() is not None


async def check_column_exists(db: AsyncSession, table: str, column: str) -> bool:
    result = await db.execute(text(f"PRAGMA table_info({table})"))
    return column in [row[1] for row in result.fetchall()]


async def add_column_if_not_exists(
    db: AsyncSession,
    table: str,
    column: str,
    column_type: str,
    default: Optional[str] = None
) -> bool:
    """
    เพิ่มคอลัมน์ถ้ายังไม่มี

    คืนค่า True เมื่อเพิ่มคอลัมน์ใหม่
    """
    if not await check_table_exists(db, table):
        logger.debug(f"ไม่มีตาราง {table} ข้ามคอลัมน์ {column}")
        return False
    if await check_column_exists(db, table, column):
        return False

    sql = f"ALTER TABLE {table} ADD COLUMN {column} {column_type}"
    if default is not None:
        sql += f" DEFAULT {default}"
    try:
        await db.execute(text(sql))
        await db.commit()
    except SQLAlchemyError as e:
        # คอลัมน์หนึ่งล้มเหลวไม่ควรหยุดคอลัมน์อื่น
        logger.warning(f"เพิ่มคอลัมน์ {table}.{column} ไม่สำเร็จ: {e}")
        await db.rollback()
        return False
    logger.info(f"[+] เพิ่มคอลัมน์: {table}.{column}")
    return True


async def ensure_all_columns(db: AsyncSession) -> dict:
    result = {"checked": 0, "added": 0, "columns_added": []}
    for table, column, col_type, default in REQUIRED_COLUMNS:
        result["checked"] += 1
        if await add_column_if_not_exists(db, table, column, col_type, default):
            result["added"] += 1
            result["columns_added"].append(f"{table}.{column}")
    return result


async def run_migrations(db: AsyncSession) -> dict:
    """
    รันการปรับโครงสร้างฐานข้อมูล

    ข้อผิดพลาดถูกบันทึกใน errors และ log เพื่อไม่ให้แอปเริ่มไม่ได้
    """
    result = {
        "old_version": None,
        "new_version": CURRENT_DB_VERSION,
        "columns_added": [],
        "sequences_created": 0,
        "errors": []
    }

    try:
        await ensure_system_config_table(db)
        current_version = await get_db_version(db)
        result["old_version"] = current_version
        logger.info(f"ตรวจเวอร์ชันฐานข้อมูล: {current_version or 'ไม่ทราบ'} -> {CURRENT_DB_VERSION}")

        column_result = await ensure_all_columns(db)
        result["columns_added"] = column_result["columns_added"]
        if column_result["added"]:
            logger.info(f"ปรับโครงสร้าง: เพิ่ม {column_result['added']} คอลัมน์")
        else:
            logger.info("โครงสร้างฐานข้อมูลครบถ้วน")

        result["sequences_created"] = await ensure_doc_sequences(db)
        await db.commit()

        if current_version != CURRENT_DB_VERSION:
            await set_db_version(db, CURRENT_DB_VERSION)
            logger.info(f"อัปเดตเวอร์ชันฐานข้อมูลเป็น {CURRENT_DB_VERSION}")
    except SQLAlchemyError as e:
        error_msg = f"ปรับโครงสร้างฐานข้อมูลผิดพลาด: {e}"
        logger.error(error_msg)
        await db.rollback()
        result["errors"].append(error_msg)

    return result
