import logging

from fastapi import APIRouter, HTTPException, Request, status

from tableside.api.deps import AdminServiceDep, AdminUserDep
from tableside.core.audit import AuditAction, audit_product_action, audit_table_action
from tableside.models.models import OrderStatusEnum
from tableside.realtime.manager import manager
from tableside.schemas.auth import UserPublic
from tableside.schemas.menu import ProductCreate, ProductPublic, ProductUpdate
from tableside.schemas.order import TableActionResponse, TableSummary
from tableside.services.session import room_for_table


router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger("tableside.admin")


@router.get("/products", response_model=list[ProductPublic])
async def list_products(service: AdminServiceDep, _: AdminUserDep) -> list[ProductPublic]:
    return await service.list_products()


@router.post("/products", response_model=ProductPublic, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    service: AdminServiceDep,
    _: AdminUserDep,
    request: Request,
) -> ProductPublic:
    product = await service.create_product(payload)
    audit_product_action(AuditAction.PRODUCT_CREATE, request, product.id, {"name": product.name})
    return product


@router.put("/products/{product_id}", response_model=ProductPublic)
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    service: AdminServiceDep,
    _: AdminUserDep,
    request: Request,
) -> ProductPublic:
    product = await service.update_product(product_id, payload)
    audit_product_action(
        AuditAction.PRODUCT_UPDATE,
        request,
        product.id,
        {"fields": sorted(payload.model_dump(exclude_unset=True))},
    )
    return product


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: str,
    service: AdminServiceDep,
    _: AdminUserDep,
    request: Request,
) -> None:
    if not await service.delete_product(product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    audit_product_action(AuditAction.PRODUCT_DELETE, request, product_id)


@router.get("/tables", response_model=list[TableSummary])
async def list_tables(service: AdminServiceDep, _: AdminUserDep) -> list[TableSummary]:
    return await service.tables()


async def _announce(table_number: str, status_value: OrderStatusEnum, updated: int) -> None:
    await manager.broadcast(
        room_for_table(table_number),
        "table_status",
        {"table_number": table_number, "status": status_value.value, "updated": updated},
    )


@router.post("/tables/{table_number}/ready", response_model=TableActionResponse)
async def mark_table_ready(
    table_number: str,
    service: AdminServiceDep,
    _: AdminUserDep,
    request: Request,
) -> TableActionResponse:
    updated = await service.mark_table_ready(table_number)
    audit_table_action(AuditAction.TABLE_READY, request, table_number, updated)
    await _announce(table_number, OrderStatusEnum.READY, updated)
    return TableActionResponse(table_number=table_number, updated=updated, status=OrderStatusEnum.READY)


@router.post("/tables/{table_number}/clear", response_model=TableActionResponse)
async def clear_table(
    table_number: str,
    service: AdminServiceDep,
    _: AdminUserDep,
    request: Request,
) -> TableActionResponse:
    updated = await service.clear_table(table_number)
    audit_table_action(AuditAction.TABLE_CLEAR, request, table_number, updated)
    await _announce(table_number, OrderStatusEnum.COMPLETED, updated)
    return TableActionResponse(table_number=table_number, updated=updated, status=OrderStatusEnum.COMPLETED)


@router.get("/users", response_model=list[UserPublic])
async def list_users(service: AdminServiceDep, _: AdminUserDep) -> list[UserPublic]:
    return await service.list_users()


@router.get("/cache")
async def cache_stats(service: AdminServiceDep, _: AdminUserDep) -> dict:
    return service.cache_stats()


@router.delete("/cache", status_code=status.HTTP_204_NO_CONTENT)
async def clear_caches(service: AdminServiceDep, _: AdminUserDep) -> None:
    service.clear_caches()
    logger.info("Admin cleared caches")
