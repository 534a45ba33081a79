"""
BizIntel Database Models

7 tables for the business-intelligence store:
  1. customers           - Accounts buying from us (tier, lifetime spend)
  2. products            - Product catalog (price, unit cost)
  3. sales_reps          - Sales representatives by region
  4. orders              - Order headers
  5. order_items         - Order lines (total_price = quantity × unit_price)
  6. inventory           - Stock per product per warehouse
  7. sales_opportunities - Opportunities opened against a customer/product

Schema creation and seeding belong to the deployment, not to request handling.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from db.session import Base

CUSTOMER_TIERS = ("bronze", "silver", "gold", "platinum")
CUSTOMER_STATUSES = ("active", "inactive", "prospect")
PRODUCT_STATUSES = ("active", "discontinued", "out_of_stock")
ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
OPPORTUNITY_PRIORITIES = ("low", "medium", "high")


def _new_id() -> str:
    return str(uuid.uuid4())


def _in_check(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


# ─── 1. Customers ──────────────────────────────────────────────────────────


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(50))
    company = Column(String(255))
    industry = Column(String(100))
    location = Column(String(255))
    customer_tier = Column(String(20), nullable=False, default="bronze")
    acquisition_date = Column(DateTime)
    total_spent = Column(Float, nullable=False, default=0.0)
    last_order_date = Column(DateTime)
    status = Column(String(20), nullable=False, default="active")
    notes = Column(Text)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(_in_check("customer_tier", CUSTOMER_TIERS), name="ck_customer_tier"),
        CheckConstraint(_in_check("status", CUSTOMER_STATUSES), name="ck_customer_status"),
        Index("idx_customers_email", "email"),
        Index("idx_customers_company", "company"),
    )

    orders = relationship("Order", back_populates="customer")


# ─── 2. Products ───────────────────────────────────────────────────────────


class Product(Base):
    __tablename__ = "products"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    category = Column(String(100))
    subcategory = Column(String(100))
    price = Column(Float, nullable=False)
    cost = Column(Float, nullable=False)
    sku = Column(String(100), nullable=False, unique=True)
    description = Column(Text)
    brand = Column(String(100))
    status = Column(String(20), nullable=False, default="active")

    __table_args__ = (
        CheckConstraint(_in_check("status", PRODUCT_STATUSES), name="ck_product_status"),
        Index("idx_products_category", "category"),
    )

    inventory = relationship("InventoryRecord", back_populates="product")


# ─── 3. Sales Representatives ──────────────────────────────────────────────


class SalesRep(Base):
    __tablename__ = "sales_reps"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True)
    region = Column(String(100))
    hire_date = Column(DateTime)
    performance = Column(Float, default=0.0)


# ─── 4. Orders ─────────────────────────────────────────────────────────────


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True, default=_new_id)
    customer_id = Column(String(64), ForeignKey("customers.id"), nullable=False)
    order_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    status = Column(String(20), nullable=False, default="pending")
    total_amount = Column(Float, nullable=False, default=0.0)
    shipping_address = Column(Text)
    payment_method = Column(String(50))
    notes = Column(Text)
    sales_rep_id = Column(String(64), ForeignKey("sales_reps.id"))
    region = Column(String(100))

    __table_args__ = (
        CheckConstraint(_in_check("status", ORDER_STATUSES), name="ck_order_status"),
        Index("idx_orders_customer_id", "customer_id"),
        Index("idx_orders_date", "order_date"),
    )

    customer = relationship("Customer", back_populates="orders")
    items = relationship("OrderItem", back_populates="order")


# ─── 5. Order Items ────────────────────────────────────────────────────────


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String(64), primary_key=True, default=_new_id)
    order_id = Column(String(64), ForeignKey("orders.id"), nullable=False)
    product_id = Column(String(64), ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")


# ─── 6. Inventory ──────────────────────────────────────────────────────────


class InventoryRecord(Base):
    __tablename__ = "inventory"

    id = Column(String(64), primary_key=True, default=_new_id)
    product_id = Column(String(64), ForeignKey("products.id"), nullable=False)
    warehouse = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    reorder_level = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("product_id", "warehouse", name="uq_inventory_product_warehouse"),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity"),
        CheckConstraint("reorder_level >= 0", name="ck_inventory_reorder_level"),
        Index("idx_inventory_product_id", "product_id"),
    )

    product = relationship("Product", back_populates="inventory")


# ─── 7. Sales Opportunities ────────────────────────────────────────────────


class SalesOpportunity(Base):
    __tablename__ = "sales_opportunities"

    id = Column(String(64), primary_key=True, default=_new_id)
    customer_id = Column(String(64), ForeignKey("customers.id"), nullable=False)
    product_id = Column(String(64), ForeignKey("products.id"), nullable=False)
    sales_rep_id = Column(String(64), ForeignKey("sales_reps.id"))
    quantity = Column(Integer, nullable=False)
    estimated_value = Column(Float, nullable=False)
    priority = Column(String(10), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default="open")
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(_in_check("priority", OPPORTUNITY_PRIORITIES), name="ck_opportunity_priority"),
        Index("idx_opportunities_customer_id", "customer_id"),
    )
