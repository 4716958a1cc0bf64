from warehouse.db.session import engine
from warehouse.db.base import Base

# import โมเดลทั้งหมดเพื่อให้ create_all สร้างทุกตาราง
import warehouse.models  # noqa: F401


async def ensure_tables_exist() -> None:
    """
    สร้างตารางที่ยังไม่มี (เรียกตอนเริ่มแอป)
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
