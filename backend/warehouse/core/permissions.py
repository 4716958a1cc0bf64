"""
สิทธิ์การใช้งานตามบทบาท

สิทธิ์อยู่ในรูป "<โมดูล>:<การกระทำ>" ADMIN ได้ทุกสิทธิ์ผ่าน "*"
ผู้ใช้แต่ละคนเพิ่มสิทธิ์พิเศษได้ใน custom_permissions
"""

from typing import Dict, Iterable, List, Optional

ALL_PERMISSIONS: Dict[str, str] = {
    "products:read": "ดูสินค้า",
    "products:write": "จัดการสินค้า",
    "stock:read": "ดูสต๊อค",
    "stock:write": "จัดการสต๊อคและ Lot",
    "movements:read": "ดูการเคลื่อนไหวสต๊อค",
    "movements:write": "สร้าง/แก้ไขการเคลื่อนไหวสต๊อค",
    "movements:approve": "อนุมัติ/บันทึกการเคลื่อนไหวสต๊อค",
    "suppliers:read": "ดูผู้จัดจำหน่าย",
    "suppliers:write": "จัดการผู้จัดจำหน่าย",
    "pr:read": "ดูใบขอซื้อ",
    "pr:write": "สร้าง/แก้ไขใบขอซื้อ",
    "pr:approve": "อนุมัติใบขอซื้อ",
    "po:read": "ดูใบสั่งซื้อ",
    "po:write": "สร้าง/แก้ไขใบสั่งซื้อ",
    "po:approve": "อนุมัติใบสั่งซื้อ",
    "grn:read": "ดูใบรับสินค้า",
    "grn:write": "รับสินค้า",
    "reports:read": "ดูรายงาน",
}

ROLES = ["ADMIN", "APPROVER", "PURCHASING", "INVENTORY", "REQUESTER", "VIEWER"]

ROLE_PERMISSIONS: Dict[str, List[str]] = {
    "ADMIN": ["*"],
    "INVENTORY": [
        "products:read", "products:write",
        "stock:read", "stock:write",
        "movements:read", "movements:write", "movements:approve",
        "grn:read", "grn:write",
    ],
    "REQUESTER": [
        "products:read", "stock:read", "movements:read",
        "pr:read", "pr:write",
    ],
    "APPROVER": [
        "products:read", "stock:read",
        "movements:read", "movements:approve",
        "pr:read", "pr:approve",
        "po:read", "po:approve",
    ],
    "PURCHASING": [
        "products:read", "stock:read",
        "suppliers:read", "suppliers:write",
        "pr:read",
        "po:read", "po:write",
        "grn:read", "grn:write",
    ],
    "VIEWER": [
        "products:read", "stock:read", "movements:read",
        "pr:read", "po:read", "reports:read",
    ],
}


def has_permission(role: str, permission: str, custom: Optional[Iterable[str]] = None) -> bool:
    granted = ROLE_PERMISSIONS.get(role, [])
    if "*" in granted or permission in granted:
        return True
    return bool(custom) and permission in custom


def has_any_permission(role: str, permissions: Iterable[str], custom: Optional[Iterable[str]] = None) -> bool:
    custom = list(custom or [])
    return any(has_permission(role, p, custom) for p in permissions)


def get_effective_permissions(role: str, custom: Optional[Iterable[str]] = None) -> List[str]:
    """รวมสิทธิ์จากบทบาทและสิทธิ์พิเศษ"""
    granted = ROLE_PERMISSIONS.get(role, [])
    if "*" in granted:
        return list(ALL_PERMISSIONS.keys())
    merged = set(granted) | set(custom or [])
    return [p for p in ALL_PERMISSIONS if p in merged]
