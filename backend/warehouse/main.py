from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import os

from warehouse.api.api_v1.api import api_router as api_v1_router
from warehouse.api.erp import router as erp_router
from warehouse.core.config import settings
from warehouse.core.errors import AppError, MSG_INVALID_INPUT, get_error_message
from warehouse.core.logging_config import setup_logging, get_logger
from warehouse.services.cron_settings import get_cron_settings
from warehouse.services.scheduler import init_scheduler, shutdown_scheduler, apply_cron_settings
from warehouse.db.session import SessionLocal
from warehouse.db.migrations import run_migrations
from warehouse.db.init_db import ensure_tables_exist

ERP_PREFIX = "/api/erp"

# เริ่มระบบ log
log_level = os.getenv("LOG_LEVEL", "INFO")
setup_logging(log_level, os.getenv("LOG_DIR", "logs") or None)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """วงจรชีวิตของแอป"""
    logger.info("🚀 กำลังเริ่มระบบ...")

    try:
        await ensure_tables_exist()
        logger.info("📊 ตารางฐานข้อมูลพร้อมใช้งาน")
    except SQLAlchemyError as e:
        logger.warning(f"สร้างตารางไม่สำเร็จ: {e}")

    async with SessionLocal() as db:
        result = await run_migrations(db)
    if result.get("columns_added"):
        logger.info(f"📦 ปรับโครงสร้างฐานข้อมูล: เพิ่ม {len(result['columns_added'])} คอลัมน์")
        for col in result["columns_added"]:
            logger.info(f"   ✅ {col}")
    if result.get("old_version") != result.get("new_version"):
        logger.info(f"📊 เวอร์ชันฐานข้อมูล: {result.get('old_version') or 'เริ่มต้น'} → {result.get('new_version')}")

    init_scheduler()
    async with SessionLocal() as db:
        apply_cron_settings(await get_cron_settings(db))
    yield
    logger.info("🛑 กำลังปิดระบบ...")
    shutdown_scheduler()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    description="ระบบคลังสินค้า สต๊อค และจัดซื้อ",
    lifespan=lifespan
)

# CORS
if settings.BACKEND_CORS_ORIGINS:
    logger.info(f"ตั้งค่า CORS อนุญาต: {settings.BACKEND_CORS_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def is_erp_request(request: Request) -> bool:
    return request.url.path.startswith(ERP_PREFIX)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} → {exc.status_code} {exc.code}: {exc.message}")
    return error_response(exc.status_code, exc.message)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"⚠️ {request.method} {request.url.path}: {exc.orig}")
    if is_erp_request(request):
        return error_response(409, "Data conflict")
    return error_response(409, get_error_message(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    if is_erp_request(request):
        return error_response(400, "Invalid request: " + ", ".join(messages))
    return error_response(400, ", ".join(messages) or MSG_INVALID_INPUT)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"❌ {request.method} {request.url.path}: {exc}")
    if is_erp_request(request):
        return error_response(500, "Internal server error")
    return error_response(500, get_error_message(exc))


logger.info(f"ลงทะเบียน API v1 ที่ {settings.API_V1_STR}")
app.include_router(api_v1_router, prefix=settings.API_V1_STR)
app.include_router(erp_router, prefix=ERP_PREFIX, tags=["ERP API"])


@app.get("/")
async def root():
    return {"message": settings.PROJECT_NAME}


@app.get("/health")
async def health():
    return {"status": "ok"}
