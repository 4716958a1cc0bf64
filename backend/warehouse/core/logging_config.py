"""
การตั้งค่า logging ของระบบคลังสินค้า

- console มีสีตามระดับ
- ไฟล์รายวัน logs/app_YYYY-MM-DD.log และ error แยกเป็น logs/error_YYYY-MM-DD.log
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# ไลบรารีที่ log ถี่เกินไปในระดับ INFO
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "apscheduler", "httpx", "httpcore")

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[1;31m",
}


class ColoredFormatter(logging.Formatter):
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colored = logging.makeLogRecord(record.__dict__)
        color = LEVEL_COLORS.get(colored.levelname, "")
        colored.levelname = f"{color}{colored.levelname}{self.RESET}"
        return super().format(colored)


def _daily_file_handler(log_dir: Path, prefix: str, level: int) -> logging.Handler:
    stamp = datetime.now().strftime("%Y-%m-%d")
    handler = logging.FileHandler(log_dir / f"{prefix}_{stamp}.log", encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_dir: Union[str, Path, None] = "logs") -> None:
    """
    ตั้งค่า root logger

    Args:
        log_level: DEBUG / INFO / WARNING / ERROR
        log_dir: โฟลเดอร์เก็บไฟล์ log, None = แสดงเฉพาะ console
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ColoredFormatter(LOG_FORMAT, DATE_FORMAT))
    root.addHandler(console)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        root.addHandler(_daily_file_handler(path, "app", logging.INFO))
        root.addHandler(_daily_file_handler(path, "error", logging.ERROR))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"📋 logging พร้อมใช้งาน (ระดับ {log_level.upper()})")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
