"""Order endpoints.

POST  /v1/orders                     -> checkout (escrow is opened after commit)
GET   /v1/orders/{orderId}           -> order with items
PATCH /v1/orders/{orderId}/status    -> seller status update (completion releases escrow)
"""

from fastapi import APIRouter, Path

from shopguard.schemas import OrderCreate, OrderOut, OrderStatusUpdate
from shopguard.services.orders import OrderLine, create_order, get_order, update_order_status
from shopguard.stores.postgres import get_session, get_session_factory

router = APIRouter()


@router.post("", response_model=OrderOut, status_code=201)
async def checkout(request: OrderCreate) -> OrderOut:
    order = await create_order(
        session_factory=get_session_factory(),
        shop_id=request.shop_id,
        buyer_id=request.buyer_id,
        buyer_email=request.buyer_email,
        buyer_phone=request.buyer_phone,
        items=[OrderLine(product_id=i.product_id, quantity=i.quantity) for i in request.items],
    )
    return OrderOut.model_validate(order)


@router.get("/{order_id}", response_model=OrderOut)
async def read_order(order_id: int = Path(ge=1)) -> OrderOut:
    async with get_session() as session:
        order = await get_order(session=session, order_id=order_id)
        return OrderOut.model_validate(order)


@router.patch("/{order_id}/status", response_model=OrderOut)
async def change_status(request: OrderStatusUpdate, order_id: int = Path(ge=1)) -> OrderOut:
    async with get_session() as session:
        order = await update_order_status(
            session=session,
            order_id=order_id,
            shop_id=request.shop_id,
            status=request.status,
        )
        return OrderOut.model_validate(order)
