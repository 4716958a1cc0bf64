"""
สินค้าและตัวแปรสินค้า (variant)

สินค้าที่มี variant จะเก็บสต๊อคแยกตาม variant
ตัวเลือก (OptionType/OptionValue) เช่น สี, ไซส์ ใช้ประกอบชื่อและ SKU ของ variant
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, DECIMAL
)
from sqlalchemy.orm import relationship
from warehouse.db.base import Base

ITEM_TYPE_LABELS = {
    "FINISHED_GOOD": "สินค้าสำเร็จรูป",
    "RAW_MATERIAL": "วัตถุดิบ",
    "CONSUMABLE": "วัสดุสิ้นเปลือง",
}

STOCK_TYPE_LABELS = {
    "STOCKED": "สต๊อคปกติ",
    "MADE_TO_ORDER": "ผลิตตามสั่ง",
    "DROP_SHIP": "ส่งตรงจากผู้ขาย",
}


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(50), unique=True, nullable=False, index=True, comment="รหัสสินค้า")
    barcode = Column(String(50), index=True, comment="บาร์โค้ด")
    name = Column(String(200), nullable=False, index=True, comment="ชื่อสินค้า")
    description = Column(Text)

    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)

    item_type = Column(String(20), nullable=False, default="FINISHED_GOOD", comment="ประเภทสินค้า")
    stock_type = Column(String(20), nullable=False, default="STOCKED", comment="ประเภทการเก็บสต๊อค")

    reorder_point = Column(DECIMAL(18, 4), default=Decimal("0"), comment="จุดสั่งซื้อ (ROP)")
    min_qty = Column(DECIMAL(18, 4), default=Decimal("0"))
    max_qty = Column(DECIMAL(18, 4), default=Decimal("0"))
    standard_cost = Column(DECIMAL(18, 4), default=Decimal("0"), comment="ต้นทุนมาตรฐาน")
    last_cost = Column(DECIMAL(18, 4), default=Decimal("0"), comment="ต้นทุนล่าสุดจากการรับเข้า")

    has_variants = Column(Boolean, default=False, nullable=False)
    active = Column(Boolean, default=True, nullable=False, index=True)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category", back_populates="products")
    unit = relationship("Unit")
    variants = relationship("ProductVariant", back_populates="product", order_by="ProductVariant.id")
    stock_balances = relationship("StockBalance", back_populates="product")

    def __repr__(self):
        return f"<Product {self.sku}: {self.name}>"

    @property
    def item_type_display(self) -> str:
        return ITEM_TYPE_LABELS.get(self.item_type, self.item_type)

    @property
    def stock_type_display(self) -> str:
        return STOCK_TYPE_LABELS.get(self.stock_type, self.stock_type)


class OptionType(Base):
    """ประเภทตัวเลือก เช่น สี, ไซส์"""
    __tablename__ = "option_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False, comment="ชื่อตัวเลือก")
    display_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    values = relationship("OptionValue", back_populates="option_type", cascade="all, delete-orphan",
                          order_by="OptionValue.display_order")

    def __repr__(self):
        return f"<OptionType {self.name}>"


class OptionValue(Base):
    __tablename__ = "option_values"
    __table_args__ = (
        UniqueConstraint('option_type_id', 'value', name='uq_option_type_value'),
    )

    id = Column(Integer, primary_key=True, index=True)
    option_type_id = Column(Integer, ForeignKey("option_types.id"), nullable=False, index=True)
    value = Column(String(100), nullable=False, comment="ค่า เช่น แดง, XL")
    display_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    option_type = relationship("OptionType", back_populates="values")

    def __repr__(self):
        return f"<OptionValue {self.value}>"


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    sku = Column(String(80), unique=True, nullable=False, index=True, comment="SKU ของ variant")
    barcode = Column(String(50), index=True)
    name = Column(String(200), comment="ชื่อ variant เช่น แดง, XL")
    stock_type = Column(String(20), nullable=False, default="STOCKED")

    cost_price = Column(DECIMAL(18, 4), default=Decimal("0"))
    selling_price = Column(DECIMAL(18, 4), default=Decimal("0"))
    reorder_point = Column(DECIMAL(18, 4), default=Decimal("0"))
    min_qty = Column(DECIMAL(18, 4), default=Decimal("0"))
    max_qty = Column(DECIMAL(18, 4), default=Decimal("0"))
    low_stock_alert = Column(Boolean, default=True, nullable=False)
    last_cost = Column(DECIMAL(18, 4), default=Decimal("0"))

    active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product", back_populates="variants")
    option_values = relationship("VariantOptionValue", back_populates="variant", cascade="all, delete-orphan")
    stock_balances = relationship("StockBalance", back_populates="variant")

    def __repr__(self):
        return f"<ProductVariant {self.sku}>"


class VariantOptionValue(Base):
    __tablename__ = "variant_option_values"
    __table_args__ = (
        UniqueConstraint('variant_id', 'option_value_id', name='uq_variant_option_value'),
    )

    id = Column(Integer, primary_key=True, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False, index=True)
    option_value_id = Column(Integer, ForeignKey("option_values.id"), nullable=False, index=True)

    variant = relationship("ProductVariant", back_populates="option_values")
    option_value = relationship("OptionValue")
