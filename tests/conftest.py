"""Shared fixtures: in-memory SQLite database and seed helpers."""

from datetime import timedelta
from decimal import Decimal
import itertools

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import shopguard.models  # noqa: F401
from shopguard.models import (
    EscrowStatus,
    EscrowTransaction,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductStatus,
    Review,
    Shop,
    ShopStatus,
)
from shopguard.stores.postgres import Base
from shopguard.timeutil import utcnow


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite/aiosqlite transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


class Seed:
    """Insert rows with controllable ages."""

    _slugs = itertools.count(1)

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def shop(
        self,
        *,
        age_days: float = 0,
        owner_id: int = 1,
        status: ShopStatus = ShopStatus.ACTIVE,
    ) -> Shop:
        created = utcnow() - timedelta(days=age_days)
        n = next(self._slugs)
        shop = Shop(
            owner_id=owner_id,
            name=f"Shop {n}",
            slug=f"shop-{n}",
            status=status,
            created_at=created,
            updated_at=created,
        )
        self.session.add(shop)
        await self.session.flush()
        return shop

    async def product(
        self,
        shop: Shop,
        *,
        name: str = "Handmade mug",
        price: str = "25.00",
        category: str = "home",
        inventory_count: int = 10,
        status: ProductStatus = ProductStatus.ACTIVE,
        age_days: float = 0,
    ) -> Product:
        product = Product(
            shop_id=shop.id,
            name=name,
            description="Stoneware, dishwasher safe",
            price=Decimal(price),
            category=category,
            inventory_count=inventory_count,
            status=status,
            created_at=utcnow() - timedelta(days=age_days),
        )
        self.session.add(product)
        await self.session.flush()
        return product

    async def order(
        self,
        shop: Shop,
        *,
        status: OrderStatus = OrderStatus.PAID,
        buyer_id: int | None = 100,
        amount: str = "50.00",
        age_days: float = 0,
        fulfillment_hours: float = 24,
        shipped: bool = False,
        product: Product | None = None,
    ) -> Order:
        created = utcnow() - timedelta(days=age_days)
        order = Order(
            shop_id=shop.id,
            buyer_id=buyer_id,
            buyer_email="buyer@example.com",
            total_amount=Decimal(amount),
            status=status,
            created_at=created,
            updated_at=created + timedelta(hours=fulfillment_hours),
            shipped_at=created + timedelta(hours=fulfillment_hours) if shipped else None,
        )
        if product is not None:
            order.items = [
                OrderItem(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=1,
                    price_at_purchase=product.price,
                )
            ]
        self.session.add(order)
        await self.session.flush()
        return order

    async def escrow(
        self,
        order: Order,
        *,
        status: EscrowStatus = EscrowStatus.HELD,
        eligible_in_days: float = 0,
    ) -> EscrowTransaction:
        now = utcnow()
        escrow = EscrowTransaction(
            order_id=order.id,
            shop_id=order.shop_id,
            amount=order.total_amount,
            status=status,
            payout_eligible_at=now + timedelta(days=eligible_in_days),
            released_at=now if status != EscrowStatus.HELD else None,
            created_at=now,
        )
        self.session.add(escrow)
        await self.session.flush()
        return escrow

    async def review(self, shop: Shop, rating: int, *, buyer_id: int = 100) -> Review:
        review = Review(shop_id=shop.id, buyer_id=buyer_id, rating=rating)
        self.session.add(review)
        await self.session.flush()
        return review


@pytest.fixture
def seed(session) -> Seed:
    return Seed(session)
