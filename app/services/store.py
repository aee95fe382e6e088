"""Persistence boundary: store protocols and their SQLAlchemy implementations."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app import models
from app.schemas.lender import Lender
from app.schemas.prospect import Prospect
from app.services import trust_ledger
from app.services.errors import BackendError, BackOfficeError, ConflictError, NotFoundError


logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=BaseModel)


class EntityStore(Protocol[EntityT]):
    async def get(self, entity_id: str) -> EntityT | None: ...

    async def insert(self, entity: EntityT) -> EntityT: ...

    async def update_if_version_matches(
        self, entity_id: str, version: int, patch: Mapping[str, Any]
    ) -> EntityT | None: ...

    async def query(
        self, filters: Mapping[str, Any] | None = None, order_by: str | None = None
    ) -> list[EntityT]: ...


class UserDirectory(Protocol):
    async def display_name(self, user_id: str) -> str | None: ...


class IdentityProvider(Protocol):
    def current_user(self) -> tuple[str, str]:
        """Acting user's ``(id, display name)``."""
        ...


class BlobStore(Protocol):
    async def put(self, path: str, content: bytes) -> str: ...

    async def delete(self, path: str) -> None: ...


class TrustTransactionRpc(Protocol):
    async def add_trust_transaction(
        self,
        lender_id: str,
        *,
        event_type: str,
        event_date: date,
        description: str,
        amount: Decimal,
        related_loan_id: str | None = None,
        related_loan_code: str | None = None,
        expected_version: int | None = None,
    ) -> None: ...


def to_column_value(value: Any) -> Any:
    """Python value for a column; nested models become JSON documents."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=False)
    if isinstance(value, list):
        return [to_column_value(item) for item in value]
    return value


class _SqlStore(Generic[EntityT]):
    model: type
    schema: type[EntityT]
    # Columns the store owns; callers never patch these directly.
    protected = frozenset({"id", "version", "created_at", "updated_at"})

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @asynccontextmanager
    async def _backend_errors(self) -> AsyncIterator[None]:
        try:
            yield
        except BackOfficeError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Store operation failed on %s", self.model.__tablename__)
            raise BackendError(str(exc) or exc.__class__.__name__) from exc

    def _to_schema(self, row) -> EntityT:
        return self.schema.model_validate(row)

    def _select(self):
        return select(self.model)

    async def get(self, entity_id: str) -> EntityT | None:
        async with self._backend_errors():
            stmt = (
                self._select()
                .where(self.model.id == entity_id)
                .execution_options(populate_existing=True)
            )
            row = (await self.db.execute(stmt)).scalar_one_or_none()
        return None if row is None else self._to_schema(row)

    def _values(self, entity: EntityT) -> dict[str, Any]:
        columns = {column.name for column in self.model.__table__.columns}
        data = {
            name: to_column_value(getattr(entity, name))
            for name in type(entity).model_fields
            if name in columns and name not in {"created_at", "updated_at", "version"}
        }
        data["version"] = 1
        return data

    async def insert(self, entity: EntityT) -> EntityT:
        async with self._backend_errors():
            row = self.model(**self._values(entity))
            self.db.add(row)
            await self.db.commit()
        stored = await self.get(row.id)
        if stored is None:
            raise BackendError(f"Inserted {self.model.__tablename__} row {row.id} could not be read back")
        return stored

    async def update_if_version_matches(
        self, entity_id: str, version: int, patch: Mapping[str, Any]
    ) -> EntityT | None:
        unknown = set(patch) - {column.name for column in self.model.__table__.columns}
        if unknown or set(patch) & self.protected:
            raise BackendError(f"Cannot patch fields: {sorted(unknown | (set(patch) & self.protected))}")
        values = {name: to_column_value(value) for name, value in patch.items()}
        async with self._backend_errors():
            stmt = (
                update(self.model)
                .where(self.model.id == entity_id, self.model.version == version)
                .values(**values, version=self.model.version + 1, updated_at=func.now())
                .returning(self.model.id)
            )
            updated_id = (await self.db.execute(stmt)).scalar_one_or_none()
            if updated_id is None:
                await self.db.rollback()
                logger.warning(
                    "Version mismatch on %s %s (expected version %s)",
                    self.model.__tablename__,
                    entity_id,
                    version,
                )
                return None
            await self.db.commit()
        return await self.get(entity_id)

    async def query(
        self, filters: Mapping[str, Any] | None = None, order_by: str | None = None
    ) -> list[EntityT]:
        stmt = self._select()
        for name, value in (filters or {}).items():
            stmt = stmt.where(getattr(self.model, name) == value)
        order_column = getattr(self.model, order_by or "created_at")
        stmt = stmt.order_by(order_column.desc() if order_by is None else order_column)
        async with self._backend_errors():
            rows = (await self.db.execute(stmt)).scalars().all()
        return [self._to_schema(row) for row in rows]


class ProspectStore(_SqlStore[Prospect]):
    model = models.Prospect
    schema = Prospect


class LenderStore(_SqlStore[Lender]):
    model = models.Lender
    schema = Lender
    protected = frozenset({"id", "version", "created_at", "updated_at", "trust_balance", "trust_account_events"})

    def _select(self):
        return select(models.Lender).options(selectinload(models.Lender.trust_account_events))

    def _values(self, entity: Lender) -> dict[str, Any]:
        data = super()._values(entity)
        # Trust state only ever changes through add_trust_transaction.
        data["trust_balance"] = Decimal("0")
        return data

    async def add_trust_transaction(
        self,
        lender_id: str,
        *,
        event_type: str,
        event_date: date,
        description: str,
        amount: Decimal,
        related_loan_id: str | None = None,
        related_loan_code: str | None = None,
        expected_version: int | None = None,
    ) -> None:
        """Validate and post one trust movement atomically under a row lock."""
        async with self._backend_errors():
            stmt = select(models.Lender).where(models.Lender.id == lender_id).with_for_update()
            row = (await self.db.execute(stmt)).scalar_one_or_none()
            if row is None:
                raise NotFoundError("Lender not found", details={"lender_id": lender_id})
            if expected_version is not None and row.version != expected_version:
                raise ConflictError(
                    "Lender was modified by another session",
                    details={"lender_id": lender_id, "expected_version": expected_version, "version": row.version},
                )
            balance = Decimal(row.trust_balance)
            value = trust_ledger.validate_transaction(balance, event_type, amount, description)
            self.db.add(
                models.TrustAccountEvent(
                    lender_id=lender_id,
                    event_type=event_type,
                    event_date=event_date,
                    description=description.strip(),
                    amount=value,
                    related_loan_id=related_loan_id,
                    related_loan_code=related_loan_code,
                )
            )
            row.trust_balance = balance + trust_ledger.signed_amount(event_type, value)
            row.version = row.version + 1
            await self.db.commit()


class UserStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def display_name(self, user_id: str) -> str | None:
        try:
            stmt = select(models.User.full_name).where(models.User.id == user_id)
            return (await self.db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise BackendError(str(exc) or exc.__class__.__name__) from exc
