"""Team-scoped CRUD routes for CRM records.

One factory builds the router for every record type, so tenant
resolution, scoping and the permission gate are applied identically to
companies, contacts, deals and activities.

Routes addressing one record load it through the scoping layer first and
then ask the gate with the loaded record as target; nothing is written
until both have passed.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query, Request, Response
from pydantic import BaseModel

from teamcrm.auth.permissions import permission_name
from teamcrm.models.api import (
    ActivityCreate,
    ActivityResponse,
    ActivityUpdate,
    BulkDeleteRequest,
    CompanyCreate,
    CompanyResponse,
    CompanyUpdate,
    ContactCreate,
    ContactResponse,
    ContactUpdate,
    DealCreate,
    DealResponse,
    DealUpdate,
    payload_values,
)
from teamcrm.tenancy.context import TenantContext
from teamcrm.web.dependencies import (
    Services,
    ensure_allowed,
    get_services,
    get_tenant,
    request_meta,
    require_permission,
)


def build_record_router(
    resource: str,
    prefix: str,
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    response_schema: type[BaseModel],
    filters: tuple[str, ...] = (),
) -> APIRouter:
    """Create list/get/create/update/delete/bulk-delete routes for one resource."""
    router = APIRouter(prefix=prefix, tags=[resource.lower()])

    def repo(services: Services) -> Any:
        return services.crm[resource]

    async def _audit(
        services: Services,
        request: Request,
        tenant: TenantContext,
        action: str,
        record_id: Any,
        details: dict[str, Any] | None = None,
    ) -> None:
        await services.auditor.log(
            team_id=tenant.team_id,
            user_id=tenant.user_id,
            action=f"{resource.lower()}.{action}",
            resource_type=resource,
            resource_id=str(record_id),
            details=details,
            **request_meta(request),
        )

    @router.get("", response_model=list[response_schema])  # type: ignore[valid-type]
    async def list_records(
        request: Request,
        response: Response,
        search: str | None = None,
        limit: int = Query(default=50, ge=1, le=200),
        offset: int = Query(default=0, ge=0),
        tenant: TenantContext = Depends(require_permission("view_any", resource)),
        services: Services = Depends(get_services),
    ) -> list[Any]:
        selected = {name: request.query_params.get(name) for name in filters}
        total = await repo(services).count(tenant, filters=selected, search=search)
        response.headers["X-Total-Count"] = str(total)
        return await repo(services).list(
            tenant, filters=selected, search=search, limit=limit, offset=offset
        )

    @router.get("/{record_id}", response_model=response_schema)
    async def get_record(
        record_id: int,
        tenant: TenantContext = Depends(get_tenant),
        services: Services = Depends(get_services),
    ) -> Any:
        record = await repo(services).get(tenant, record_id)
        await ensure_allowed(services, tenant, permission_name("view", resource), record)
        return record

    @router.post("", status_code=201, response_model=response_schema)
    async def create_record(
        body: create_schema,  # type: ignore[valid-type]
        request: Request,
        tenant: TenantContext = Depends(require_permission("create", resource)),
        services: Services = Depends(get_services),
    ) -> Any:
        record = await repo(services).create(tenant, payload_values(body))
        await _audit(services, request, tenant, "create", record.id)
        return record

    @router.patch("/{record_id}", response_model=response_schema)
    async def update_record(
        record_id: int,
        body: update_schema,  # type: ignore[valid-type]
        request: Request,
        tenant: TenantContext = Depends(get_tenant),
        services: Services = Depends(get_services),
    ) -> Any:
        existing = await repo(services).get(tenant, record_id)
        await ensure_allowed(services, tenant, permission_name("update", resource), existing)
        values = payload_values(body, partial=True)
        record = await repo(services).update(tenant, record_id, values)
        await _audit(services, request, tenant, "update", record_id, {"fields": sorted(values)})
        return record

    @router.delete("/{record_id}", status_code=204)
    async def delete_record(
        record_id: int,
        request: Request,
        tenant: TenantContext = Depends(get_tenant),
        services: Services = Depends(get_services),
    ) -> Response:
        existing = await repo(services).get(tenant, record_id)
        await ensure_allowed(services, tenant, permission_name("delete", resource), existing)
        await repo(services).delete(tenant, record_id)
        await _audit(services, request, tenant, "delete", record_id)
        return Response(status_code=204)

    @router.post("/bulk-delete")
    async def bulk_delete_records(
        body: BulkDeleteRequest,
        request: Request,
        tenant: TenantContext = Depends(require_permission("delete_any", resource)),
        services: Services = Depends(get_services),
    ) -> dict[str, int]:
        deleted = await repo(services).bulk_delete(tenant, body.ids)
        await _audit(services, request, tenant, "bulk_delete", "", {"ids": sorted(set(body.ids))})
        return {"deleted": deleted}

    return router


companies_router = build_record_router(
    "Company",
    "/api/companies",
    CompanyCreate,
    CompanyUpdate,
    CompanyResponse,
    filters=("country", "city"),
)
contacts_router = build_record_router(
    "Contact",
    "/api/contacts",
    ContactCreate,
    ContactUpdate,
    ContactResponse,
    filters=("company_id",),
)
deals_router = build_record_router(
    "Deal",
    "/api/deals",
    DealCreate,
    DealUpdate,
    DealResponse,
    filters=("status", "stage", "company_id", "contact_id", "owner_id"),
)
activities_router = build_record_router(
    "Activity",
    "/api/activities",
    ActivityCreate,
    ActivityUpdate,
    ActivityResponse,
    filters=("type", "user_id", "subject_type", "subject_id"),
)
