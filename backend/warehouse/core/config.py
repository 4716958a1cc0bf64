from typing import List, Optional, Union
import logging

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    PROJECT_NAME: str = "ระบบคลังสินค้าและจัดซื้อ"
    API_V1_STR: str = "/api/v1"
    APP_URL: str = Field(
        default="http://localhost:3000",
        description="URL หน้าเว็บ ใช้สร้างลิงก์ในการแจ้งเตือน"
    )

    # CORS
    BACKEND_CORS_ORIGINS: List[Union[str, AnyHttpUrl]] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # ฐานข้อมูล
    SQLITE_DATABASE_URI: str = "sqlite:///./warehouse.db"

    # ERP API
    ERP_PROVIDER: str = "custom_erp"
    ERP_RATE_LIMIT: int = 60  # จำนวนคำขอต่อหน้าต่างเวลา
    ERP_RATE_WINDOW_SECONDS: int = 60

    # งานตั้งเวลาแจ้งเตือน
    ALERTS_ENABLED: bool = True
    LOW_STOCK_ALERT_HOUR: int = 8  # 0-23
    LOW_STOCK_ALERT_MINUTE: int = 0
    EXPIRY_ALERT_DAYS: int = 30
    EXPIRY_ALERT_HOUR: int = 8
    PENDING_ACTIONS_HOUR: int = 9
    NOTIFICATION_RETENTION_DAYS: int = 30

    # LINE Messaging API
    LINE_CHANNEL_ACCESS_TOKEN: Optional[str] = None
    LINE_API_BASE: str = "https://api.line.me/v2/bot"

    # อีเมล
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: str = "noreply@warehouse.local"

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env")


settings = Settings()
logger.info(f"โหลดการตั้งค่า: API_V1_STR={settings.API_V1_STR}, CORS={settings.BACKEND_CORS_ORIGINS}")
