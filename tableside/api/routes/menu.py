from typing import Literal

from fastapi import APIRouter, HTTPException, Query, status

from tableside.api.deps import StoreDep
from tableside.schemas.menu import MenuPublic, ProductPublic
from tableside.services.menu import SORT_OPTIONS, build_menu, popular_products


router = APIRouter(prefix="/menu", tags=["menu"])


@router.get("", response_model=MenuPublic)
async def get_menu(
    store: StoreDep,
    q: str | None = Query(default=None, max_length=100),
    sort: str = Query(default="relevancy"),
    order: Literal["asc", "desc"] = Query(default="desc"),
) -> MenuPublic:
    if sort not in SORT_OPTIONS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown sort option: {sort}",
        )
    products = await store.list_products()
    return build_menu(products, query=q, sort_by=sort, order=order)


@router.get("/popular", response_model=list[ProductPublic])
async def get_popular(store: StoreDep) -> list[ProductPublic]:
    return popular_products(await store.list_products())


@router.get("/{product_id}", response_model=ProductPublic)
async def get_product(product_id: str, store: StoreDep) -> ProductPublic:
    product = await store.get_one("products", product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product
