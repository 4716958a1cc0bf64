"""
ข้อผิดพลาดของระบบ

ทุกข้อผิดพลาดทางธุรกิจสืบทอดจาก AppError และถูกแปลงเป็น
{"success": false, "error": "..."} โดย exception handler ใน main.py
"""

from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

MSG_DUPLICATE = "ข้อมูลนี้มีอยู่ในระบบแล้ว"
MSG_IN_USE = "ไม่สามารถลบข้อมูลได้เนื่องจากมีการใช้งานอยู่"
MSG_GENERIC = "เกิดข้อผิดพลาด กรุณาลองใหม่อีกครั้ง"
MSG_UNKNOWN = "เกิดข้อผิดพลาดที่ไม่ทราบสาเหตุ"
MSG_INVALID_INPUT = "ข้อมูลไม่ถูกต้อง"


class AppError(Exception):
    """ข้อผิดพลาดพื้นฐาน"""

    def __init__(self, message: str, code: str = "APP_ERROR", status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.code}: {self.message}>"


class AuthError(AppError):
    def __init__(self, message: str = "กรุณาเข้าสู่ระบบ"):
        super().__init__(message, "AUTH_ERROR", 401)


class PermissionDeniedError(AppError):
    def __init__(self, message: str = "คุณไม่มีสิทธิ์ดำเนินการนี้"):
        super().__init__(message, "PERMISSION_DENIED", 403)


class ValidationError(AppError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, "VALIDATION_ERROR", 400)
        self.field = field


class NotFoundError(AppError):
    def __init__(self, resource: str = "ข้อมูล"):
        super().__init__(f"ไม่พบ{resource}", "NOT_FOUND", 404)
        self.resource = resource


class ConflictError(AppError):
    def __init__(self, message: str):
        super().__init__(message, "CONFLICT", 409)


class BusinessError(AppError):
    """กฎธุรกิจไม่ผ่าน เช่น สถานะเอกสารไม่ถูกต้อง สต๊อคไม่พอ"""

    def __init__(self, message: str):
        super().__init__(message, "BUSINESS_ERROR", 422)


class RateLimitError(AppError):
    def __init__(self, message: str = "Too many requests. Please try again later."):
        super().__init__(message, "RATE_LIMITED", 429)


def is_unique_violation(exc: IntegrityError) -> bool:
    text = str(exc.orig).lower()
    return "unique" in text or "duplicate" in text


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    return "foreign key" in str(exc.orig).lower()


def get_error_message(error: Any) -> str:
    """แปลงข้อผิดพลาดเป็นข้อความภาษาไทยสำหรับผู้ใช้"""
    if isinstance(error, AppError):
        return error.message
    if isinstance(error, IntegrityError):
        if is_unique_violation(error):
            return MSG_DUPLICATE
        if is_foreign_key_violation(error):
            return MSG_IN_USE
        return MSG_GENERIC
    if isinstance(error, Exception):
        return MSG_GENERIC
    return MSG_UNKNOWN
