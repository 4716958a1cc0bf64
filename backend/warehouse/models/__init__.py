# โมเดลทั้งหมด import ที่นี่เพื่อให้ Base.metadata รู้จักทุกตาราง

from warehouse.models.user import User
from warehouse.models.category import Category, Unit
from warehouse.models.supplier import Supplier
from warehouse.models.warehouse import Warehouse, Location
from warehouse.models.product import (
    Product, ProductVariant, OptionType, OptionValue, VariantOptionValue
)
from warehouse.models.stock import StockBalance, Lot, LotBalance
from warehouse.models.movement import StockMovement, MovementLine
from warehouse.models.purchase_requisition import PurchaseRequisition, PRLine
from warehouse.models.purchase_order import PurchaseOrder, POLine, POTimeline, GRN, GRNLine
from warehouse.models.doc_sequence import DocSequence
from warehouse.models.audit_log import AuditLog
from warehouse.models.notification import (
    Notification, UserNotificationPreference, NotificationDeliveryLog
)
from warehouse.models.integration import ERPIntegration
from warehouse.models.setting import AppSetting

__all__ = [
    "User",
    "Category",
    "Unit",
    "Supplier",
    "Warehouse",
    "Location",
    "Product",
    "ProductVariant",
    "OptionType",
    "OptionValue",
    "VariantOptionValue",
    "StockBalance",
    "Lot",
    "LotBalance",
    "StockMovement",
    "MovementLine",
    "PurchaseRequisition",
    "PRLine",
    "PurchaseOrder",
    "POLine",
    "POTimeline",
    "GRN",
    "GRNLine",
    "DocSequence",
    "AuditLog",
    "Notification",
    "UserNotificationPreference",
    "NotificationDeliveryLog",
    "ERPIntegration",
    "AppSetting",
]
