"""Ownership/scoping layer.

Every read and write of an owned record goes through ``ScopedRepository``,
which filters by the owner column (``team_id`` for CRM records, ``user_id``
for author-owned social records) and stamps that column on creation.

A record outside the active scope is reported as ``NotFoundError`` for
every entity type, so callers cannot tell "foreign" from "absent".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar, get_args

import structlog
from sqlalchemy import delete, func, or_, update
from sqlmodel import SQLModel, col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from teamcrm.exceptions import AuthorizationError, InvalidRecordError, NotFoundError
from teamcrm.models.database import TeamMembership, _utc_now

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from sqlalchemy.ext.asyncio import AsyncEngine
    from sqlmodel.sql.expression import SelectOfScalar

    from teamcrm.tenancy.context import ActorContext, TenantContext

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=SQLModel)

_PROTECTED_FIELDS = frozenset({"id", "created_at", "updated_at"})


@dataclass(frozen=True, slots=True)
class Scope:
    """Which record column must equal which context attribute."""

    column: str
    context_attr: str

    def value(self, ctx: TenantContext | ActorContext) -> str:
        value = getattr(ctx, self.context_attr, None)
        if not value:
            msg = "An active team is required"
            raise AuthorizationError(msg)
        return str(value)


TEAM_SCOPE = Scope(column="team_id", context_attr="team_id")
AUTHOR_SCOPE = Scope(column="user_id", context_attr="user_id")


def _field_type(model: type[SQLModel], name: str) -> type:
    """The concrete Python type of a model field, unwrapping ``X | None``."""
    annotation = model.model_fields[name].annotation
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    return args[0] if args else annotation  # type: ignore[return-value]


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user text matches literally (use ``escape="\\"``)."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ---------------------------------------------------------------------------
# Reference checks
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ScopedReference:
    """A foreign key that must point at a record inside the same scope."""

    field: str
    model: type[SQLModel]
    scope: Scope = TEAM_SCOPE

    @property
    def fields(self) -> tuple[str, ...]:
        return (self.field,)

    async def check(
        self, session: AsyncSession, ctx: TenantContext | ActorContext, values: Mapping[str, Any]
    ) -> None:
        ref_id = values.get(self.field)
        if ref_id is None:
            return
        stmt = select(col(self.model.id)).where(  # type: ignore[attr-defined]
            col(self.model.id) == ref_id,  # type: ignore[attr-defined]
            col(getattr(self.model, self.scope.column)) == self.scope.value(ctx),
        )
        if (await session.execute(stmt)).first() is None:
            msg = f"{self.model.__name__} not found"
            raise NotFoundError(msg)


@dataclass(frozen=True, slots=True)
class MemberReference:
    """A user id that must belong to a member of the active team."""

    field: str

    @property
    def fields(self) -> tuple[str, ...]:
        return (self.field,)

    async def check(
        self, session: AsyncSession, ctx: TenantContext | ActorContext, values: Mapping[str, Any]
    ) -> None:
        user_id = values.get(self.field)
        if user_id is None:
            return
        stmt = select(TeamMembership.id).where(
            col(TeamMembership.team_id) == TEAM_SCOPE.value(ctx),
            col(TeamMembership.user_id) == user_id,
        )
        if (await session.execute(stmt)).first() is None:
            msg = "User not found"
            raise NotFoundError(msg)


@dataclass(frozen=True, slots=True)
class MorphReference:
    """A polymorphic (type, id) pair whose target must be in the same scope."""

    type_field: str
    id_field: str
    models: Mapping[str, type[SQLModel]] = field(default_factory=dict)
    scope: Scope = TEAM_SCOPE

    @property
    def fields(self) -> tuple[str, ...]:
        return (self.type_field, self.id_field)

    async def check(
        self, session: AsyncSession, ctx: TenantContext | ActorContext, values: Mapping[str, Any]
    ) -> None:
        subject_type = values.get(self.type_field)
        subject_id = values.get(self.id_field)
        if subject_type is None and subject_id is None:
            return
        if subject_type is None or subject_id is None:
            msg = f"{self.type_field} and {self.id_field} must be given together"
            raise InvalidRecordError(msg)
        model = self.models.get(subject_type)
        if model is None:
            msg = f"Unsupported {self.type_field}: {subject_type!r}"
            raise InvalidRecordError(msg)
        await ScopedReference(self.id_field, model, self.scope).check(session, ctx, values)


Reference = ScopedReference | MemberReference | MorphReference


@dataclass(frozen=True, slots=True)
class Dependent:
    """A child table affected when a parent record is deleted."""

    model: type[SQLModel]
    field: str
    cascade: bool = False  # delete the children instead of clearing the key
    match: Mapping[str, Any] = field(default_factory=dict)
    also_clear: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def scoped_query(
    model: type[ModelT],
    ctx: TenantContext | ActorContext,
    scope: Scope = TEAM_SCOPE,
) -> SelectOfScalar[ModelT]:
    """Return ``SELECT model`` already filtered to the active scope."""
    return select(model).where(col(getattr(model, scope.column)) == scope.value(ctx))


class ScopedRepository(Generic[ModelT]):
    """CRUD over one owned model, confined to the caller's scope."""

    def __init__(
        self,
        engine: AsyncEngine,
        model: type[ModelT],
        *,
        scope: Scope = TEAM_SCOPE,
        references: Sequence[Reference] = (),
        dependents: Sequence[Dependent] = (),
        filter_fields: Iterable[str] = (),
        search_fields: Iterable[str] = (),
        order_by: Sequence[str] = ("id",),
    ) -> None:
        self._engine = engine
        self._model = model
        self._scope = scope
        self._references = tuple(references)
        self._dependents = tuple(dependents)
        self._filter_fields = frozenset(filter_fields)
        self._filter_types = {name: _field_type(model, name) for name in self._filter_fields}
        self._search_fields = tuple(search_fields)
        self._order_by = tuple(order_by)
        self._fields = frozenset(model.model_fields)

    @property
    def resource(self) -> str:
        return self._model.__name__

    def scoped_query(self, ctx: TenantContext | ActorContext) -> SelectOfScalar[ModelT]:
        return scoped_query(self._model, ctx, self._scope)

    def _filtered(
        self,
        ctx: TenantContext | ActorContext,
        filters: Mapping[str, Any] | None,
        search: str | None,
    ) -> SelectOfScalar[ModelT]:
        stmt = self.scoped_query(ctx)
        for name, value in (filters or {}).items():
            if value is None:
                continue
            if name not in self._filter_fields:
                msg = f"Cannot filter {self.resource} by {name!r}"
                raise InvalidRecordError(msg)
            stmt = stmt.where(col(getattr(self._model, name)) == self._coerce(name, value))
        if search and self._search_fields:
            pattern = f"%{escape_like(search)}%"
            stmt = stmt.where(
                or_(
                    *(
                        col(getattr(self._model, f)).ilike(pattern, escape="\\")
                        for f in self._search_fields
                    )
                )
            )
        return stmt

    async def list(
        self,
        ctx: TenantContext | ActorContext,
        *,
        filters: Mapping[str, Any] | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ModelT]:
        stmt = self._filtered(ctx, filters, search)
        stmt = stmt.order_by(*(col(getattr(self._model, f)) for f in self._order_by))
        stmt = stmt.limit(limit).offset(offset)

        async with AsyncSession(self._engine) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count(
        self,
        ctx: TenantContext | ActorContext,
        *,
        filters: Mapping[str, Any] | None = None,
        search: str | None = None,
    ) -> int:
        """Number of in-scope records matching the same filters as ``list``."""
        stmt = select(func.count()).select_from(self._filtered(ctx, filters, search).subquery())
        async with AsyncSession(self._engine) as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def get(self, ctx: TenantContext | ActorContext, record_id: Any) -> ModelT:
        async with AsyncSession(self._engine) as session:
            return await self._load(session, ctx, record_id)

    async def create(
        self, ctx: TenantContext | ActorContext, attributes: Mapping[str, Any]
    ) -> ModelT:
        owner = self._scope.value(ctx)
        values = self._clean(attributes)
        stamped = values.pop(self._scope.column, owner)
        if stamped != owner:
            logger.warning(
                "scope_stamp_rejected",
                resource=self.resource,
                user_id=ctx.user_id,
                requested=stamped,
            )
            msg = f"Cannot create {self.resource} outside the active scope"
            raise AuthorizationError(msg)
        values[self._scope.column] = owner

        async with AsyncSession(self._engine) as session:
            await self._check_references(session, ctx, values)
            record = self._model(**values)
            session.add(record)
            await session.commit()
            await session.refresh(record)
            logger.info(
                "record_created",
                resource=self.resource,
                id=getattr(record, "id", None),
                scope=owner,
            )
            return record

    async def update(
        self,
        ctx: TenantContext | ActorContext,
        record_id: Any,
        attributes: Mapping[str, Any],
    ) -> ModelT:
        values = self._clean(attributes)
        async with AsyncSession(self._engine) as session:
            record = await self._load(session, ctx, record_id)
            current_owner = getattr(record, self._scope.column)
            if self._scope.column in values:
                if values.pop(self._scope.column) != current_owner:
                    msg = f"The owner of a {self.resource} cannot be changed"
                    raise AuthorizationError(msg)

            touched = [r for r in self._references if any(f in values for f in r.fields)]
            if touched:
                merged = {f: getattr(record, f) for r in touched for f in r.fields}
                merged.update(values)
                for ref in touched:
                    await ref.check(session, ctx, merged)

            for name, value in values.items():
                setattr(record, name, value)
            if "updated_at" in self._fields:
                record.updated_at = _utc_now()  # type: ignore[attr-defined]
            session.add(record)
            await session.commit()
            await session.refresh(record)
            logger.info(
                "record_updated", resource=self.resource, id=record_id, fields=sorted(values)
            )
            return record

    async def delete(self, ctx: TenantContext | ActorContext, record_id: Any) -> None:
        async with AsyncSession(self._engine) as session:
            record = await self._load(session, ctx, record_id)
            await self._detach_dependents(session, [record_id])
            await session.delete(record)
            await session.commit()
            logger.info("record_deleted", resource=self.resource, id=record_id)

    async def bulk_delete(
        self, ctx: TenantContext | ActorContext, record_ids: Iterable[Any]
    ) -> int:
        """Delete several records; all must be in scope or nothing is deleted."""
        wanted = set(record_ids)
        if not wanted:
            return 0
        id_col = col(self._model.id)  # type: ignore[attr-defined]
        async with AsyncSession(self._engine) as session:
            stmt = self.scoped_query(ctx).where(id_col.in_(wanted))
            found = list((await session.execute(stmt)).scalars().all())
            if len(found) != len(wanted):
                logger.info(
                    "bulk_delete_rejected",
                    resource=self.resource,
                    requested=len(wanted),
                    in_scope=len(found),
                )
                msg = f"{self.resource} not found"
                raise NotFoundError(msg)
            await self._detach_dependents(session, list(wanted))
            for record in found:
                await session.delete(record)
            await session.commit()
            logger.info("records_bulk_deleted", resource=self.resource, count=len(found))
            return len(found)

    # -- internals ----------------------------------------------------------

    async def _load(
        self, session: AsyncSession, ctx: TenantContext | ActorContext, record_id: Any
    ) -> ModelT:
        id_col = col(self._model.id)  # type: ignore[attr-defined]
        stmt = self.scoped_query(ctx).where(id_col == record_id)
        record = (await session.execute(stmt)).scalars().first()
        if record is None:
            msg = f"{self.resource} not found"
            raise NotFoundError(msg)
        return record

    def _clean(self, attributes: Mapping[str, Any]) -> dict[str, Any]:
        unknown = set(attributes) - self._fields
        if unknown:
            msg = f"Unknown {self.resource} fields: {', '.join(sorted(unknown))}"
            raise InvalidRecordError(msg)
        return {k: v for k, v in attributes.items() if k not in _PROTECTED_FIELDS}

    def _coerce(self, name: str, value: Any) -> Any:
        """Convert query-string filter values to the field's Python type."""
        python_type = self._filter_types[name]
        if isinstance(value, python_type):
            return value
        try:
            return python_type(value)
        except (TypeError, ValueError) as exc:
            msg = f"Invalid filter value for {name}: {value!r}"
            raise InvalidRecordError(msg) from exc

    async def _check_references(
        self, session: AsyncSession, ctx: TenantContext | ActorContext, values: Mapping[str, Any]
    ) -> None:
        for ref in self._references:
            await ref.check(session, ctx, values)

    async def _detach_dependents(self, session: AsyncSession, parent_ids: list[Any]) -> None:
        for dep in self._dependents:
            conditions = [col(getattr(dep.model, dep.field)).in_(parent_ids)]
            conditions += [col(getattr(dep.model, k)) == v for k, v in dep.match.items()]
            if dep.cascade:
                await session.execute(delete(dep.model).where(*conditions))
            else:
                cleared = dict.fromkeys((dep.field, *dep.also_clear))
                await session.execute(update(dep.model).where(*conditions).values(cleared))
