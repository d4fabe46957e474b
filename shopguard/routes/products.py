"""Product endpoints.

POST /v1/products -> create a listing (contact-sharing, throttle and category checks)
"""

from fastapi import APIRouter

from shopguard.schemas import ProductCreate, ProductOut
from shopguard.services.products import create_product
from shopguard.stores.postgres import get_session_factory

router = APIRouter()


@router.post("", response_model=ProductOut, status_code=201)
async def create_listing(request: ProductCreate) -> ProductOut:
    product = await create_product(
        session_factory=get_session_factory(),
        shop_id=request.shop_id,
        owner_id=request.owner_id,
        name=request.name,
        description=request.description,
        price=request.price,
        category=request.category,
        inventory_count=request.inventory_count,
    )
    return ProductOut.model_validate(product)
