"""Schemas for order and product endpoints (/v1/orders, /v1/products)."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from shopguard.models import OrderStatus, ProductStatus


class OrderLineIn(BaseModel):
    product_id: int = Field(alias="productId")
    quantity: int = Field(ge=1, le=1000)

    model_config = {"populate_by_name": True}


class OrderCreate(BaseModel):
    """Checkout request. buyerId is omitted for guest checkout."""

    shop_id: int = Field(alias="shopId")
    buyer_id: int | None = Field(alias="buyerId", default=None)
    buyer_email: str = Field(alias="buyerEmail", min_length=3, max_length=320)
    buyer_phone: str | None = Field(alias="buyerPhone", default=None, max_length=32)
    items: list[OrderLineIn] = Field(min_length=1, max_length=100)

    model_config = {"populate_by_name": True}


class OrderStatusUpdate(BaseModel):
    shop_id: int = Field(alias="shopId")
    status: OrderStatus

    model_config = {"populate_by_name": True}


class OrderItemOut(BaseModel):
    product_id: int = Field(alias="productId")
    product_name: str = Field(alias="productName")
    quantity: int
    price_at_purchase: Decimal = Field(alias="priceAtPurchase")

    model_config = {"populate_by_name": True, "from_attributes": True}


class OrderOut(BaseModel):
    id: int
    shop_id: int = Field(alias="shopId")
    buyer_id: int | None = Field(alias="buyerId", default=None)
    total_amount: Decimal = Field(alias="totalAmount")
    status: OrderStatus
    escrow_released: bool = Field(alias="escrowReleased")
    created_at: datetime = Field(alias="createdAt")
    shipped_at: datetime | None = Field(alias="shippedAt", default=None)
    completed_at: datetime | None = Field(alias="completedAt", default=None)
    items: list[OrderItemOut] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "from_attributes": True}


class ProductCreate(BaseModel):
    shop_id: int = Field(alias="shopId")
    owner_id: int = Field(alias="ownerId")
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=10000)
    price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    category: str = Field(min_length=1, max_length=100)
    inventory_count: int = Field(alias="inventoryCount", default=0, ge=0)

    model_config = {"populate_by_name": True}


class ProductOut(BaseModel):
    id: int
    shop_id: int = Field(alias="shopId")
    name: str
    description: str
    price: Decimal
    category: str
    inventory_count: int = Field(alias="inventoryCount")
    status: ProductStatus
    created_at: datetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True, "from_attributes": True}
