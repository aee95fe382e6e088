"""Single writer path for prospects, loans and lenders.

Each mutation runs resolve, derive, optimistic apply, conditional persist and
reconcile under a per-entity lock held by the caller's ``MutationSession``.
Any failure restores the view to the snapshot taken before the attempt.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from app.schemas.lender import Lender
from app.schemas.prospect import HistoryEvent, LoanTerms, Prospect, ProspectStatus
from app.services import stage_engine, trust_ledger
from app.services.audit import entity_snapshot, record_audit
from app.services.errors import BackendError, BackOfficeError, ConflictError, NotFoundError, ValidationError
from app.services.store import EntityStore, IdentityProvider, TrustTransactionRpc, UserDirectory


logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=BaseModel)

STORE_OWNED_FIELDS = frozenset({"id", "version", "created_at", "updated_at"})


class EntityView(Generic[EntityT]):
    """Last known state of each entity as this session sees it."""

    def __init__(self) -> None:
        self._entities: dict[str, EntityT] = {}

    def get(self, entity_id: str) -> EntityT | None:
        return self._entities.get(entity_id)

    def put(self, entity: EntityT) -> None:
        self._entities[entity.id] = entity

    def discard(self, entity_id: str) -> None:
        self._entities.pop(entity_id, None)

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._entities

    def __len__(self) -> int:
        return len(self._entities)


class _EntityLock:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        # Holder plus waiters; the entry is dropped when this reaches zero.
        self.holders = 0


class MutationSession:
    """Per-client state: entity views and the locks that serialise writes."""

    def __init__(self, identity: IdentityProvider) -> None:
        self.identity = identity
        self.prospects: EntityView[Prospect] = EntityView()
        self.lenders: EntityView[Lender] = EntityView()
        self._locks: dict[tuple[str, str], _EntityLock] = {}

    @asynccontextmanager
    async def lock(self, resource_type: str, entity_id: str) -> AsyncIterator[None]:
        key = (resource_type, entity_id)
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _EntityLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if not entry.holders:
                del self._locks[key]

    @property
    def active_locks(self) -> int:
        return len(self._locks)

    @property
    def actor_id(self) -> str:
        return self.identity.current_user()[0]


class Orchestrator(Generic[EntityT]):
    resource_type: str = "entity"

    def __init__(self, store: EntityStore[EntityT], session: MutationSession) -> None:
        self.store = store
        self.session = session

    @property
    def view(self) -> EntityView[EntityT]:
        raise NotImplementedError

    def _not_found(self, entity_id: str) -> NotFoundError:
        return NotFoundError(
            f"{self.resource_type.capitalize()} not found",
            details={"resource_type": self.resource_type, "id": entity_id},
        )

    async def refresh(self, entity_id: str) -> EntityT:
        """Replace the view with the stored representation."""
        entity = await self.store.get(entity_id)
        if entity is None:
            self.view.discard(entity_id)
            raise self._not_found(entity_id)
        self.view.put(entity)
        return entity

    async def resolve(self, entity_id: str) -> EntityT:
        cached = self.view.get(entity_id)
        if cached is not None:
            return cached
        return await self.refresh(entity_id)

    async def create(self, entity: EntityT) -> EntityT:
        stored = await self.store.insert(entity)
        self.view.put(stored)
        record_audit(
            actor_id=self.session.actor_id,
            action=f"{self.resource_type}.created",
            resource_type=self.resource_type,
            resource_id=stored.id,
            new_value=entity_snapshot(stored),
        )
        return stored

    async def derive(self, before: EntityT, merged: EntityT) -> EntityT:
        return merged

    def validate_patch(self, patch: Mapping[str, Any]) -> None:
        protected = set(patch) & STORE_OWNED_FIELDS
        if protected:
            raise ValidationError(f"Fields are managed by the store: {sorted(protected)}")

    @staticmethod
    def changed_fields(before: EntityT, after: EntityT) -> list[str]:
        return [
            name
            for name in type(before).model_fields
            if name not in STORE_OWNED_FIELDS and getattr(before, name) != getattr(after, name)
        ]

    async def apply_update(self, entity_id: str, patch: Mapping[str, Any], *, action: str | None = None) -> EntityT:
        """Merge ``patch`` into the entity and persist the fields that changed."""
        self.validate_patch(patch)
        update = dict(patch)
        return await self.mutate(entity_id, lambda entity: entity.model_copy(update=update), action=action)

    def locked(self, entity_id: str):
        """Hold the entity lock across several steps ending in ``mutate(..., lock_held=True)``."""
        return self.session.lock(self.resource_type, entity_id)

    async def mutate(
        self,
        entity_id: str,
        transform: Callable[[EntityT], EntityT],
        *,
        action: str | None = None,
        lock_held: bool = False,
    ) -> EntityT:
        """Compute the next state from the current one and persist it.

        ``transform`` runs under the entity lock; if it raises, nothing changes.
        Pass ``lock_held=True`` only from inside ``locked(entity_id)``.
        """
        if lock_held:
            return await self._mutate(entity_id, transform, action)
        async with self.locked(entity_id):
            return await self._mutate(entity_id, transform, action)

    async def _mutate(
        self,
        entity_id: str,
        transform: Callable[[EntityT], EntityT],
        action: str | None,
    ) -> EntityT:
        before = await self.resolve(entity_id)
        merged = await self.derive(before, transform(before))
        changed = self.changed_fields(before, merged)
        if not changed:
            return before

        self.view.put(merged)
        try:
            confirmed = await self.store.update_if_version_matches(
                entity_id, before.version, {name: getattr(merged, name) for name in changed}
            )
        except BackOfficeError:
            self.view.put(before)
            logger.warning("Rolled back %s %s after a store failure", self.resource_type, entity_id)
            raise
        except Exception as exc:
            self.view.put(before)
            logger.warning("Rolled back %s %s after a store failure", self.resource_type, entity_id)
            raise BackendError(str(exc) or type(exc).__name__) from exc

        if confirmed is None:
            self.view.put(before)
            if await self.store.get(entity_id) is None:
                self.view.discard(entity_id)
                raise self._not_found(entity_id)
            logger.warning("Concurrent update rejected for %s %s", self.resource_type, entity_id)
            raise ConflictError(
                f"{self.resource_type.capitalize()} was modified by another session",
                details={"resource_type": self.resource_type, "id": entity_id, "version": before.version},
            )

        self.view.put(confirmed)
        record_audit(
            actor_id=self.session.actor_id,
            action=action or f"{self.resource_type}.updated",
            resource_type=self.resource_type,
            resource_id=entity_id,
            old_value={name: getattr(before, name) for name in changed},
            new_value={name: getattr(confirmed, name) for name in changed},
        )
        return confirmed


class ProspectOrchestrator(Orchestrator[Prospect]):
    resource_type = "prospect"

    def __init__(self, store: EntityStore[Prospect], users: UserDirectory, session: MutationSession) -> None:
        super().__init__(store, session)
        self.users = users

    @property
    def view(self) -> EntityView[Prospect]:
        return self.session.prospects

    async def derive(self, before: Prospect, merged: Prospect) -> Prospect:
        updates: dict[str, Any] = {}

        if merged.assigned_to != before.assigned_to:
            name = await self.users.display_name(merged.assigned_to) if merged.assigned_to else None
            updates["assigned_to_name"] = name

        known = {event.id for event in before.history}
        if any(event.id not in known and not event.created_by_user_id for event in merged.history):
            user_id, user_name = self.session.identity.current_user()
            updates["history"] = [
                _stamp(event, user_id, user_name) if event.id not in known and not event.created_by_user_id else event
                for event in merged.history
            ]

        if merged.loan_amount != before.loan_amount and merged.status == ProspectStatus.IN_PROGRESS.value:
            terms = merged.terms or LoanTerms()
            updates["terms"] = terms.model_copy(update={"principal_balance": Decimal(merged.loan_amount)})

        if merged.borrower_type != before.borrower_type or merged.loan_type != before.loan_type:
            updates["stages"] = stage_engine.replace_prevalidation_documents(
                merged.stages, merged.borrower_type, merged.loan_type
            )

        return merged.model_copy(update=updates) if updates else merged


def _stamp(event: HistoryEvent, user_id: str, user_name: str) -> HistoryEvent:
    return event.model_copy(update={"created_by_user_id": user_id, "created_by_user_name": user_name})


class LenderOrchestrator(Orchestrator[Lender]):
    resource_type = "lender"

    def __init__(self, store: EntityStore[Lender], rpc: TrustTransactionRpc, session: MutationSession) -> None:
        super().__init__(store, session)
        self.rpc = rpc

    @property
    def view(self) -> EntityView[Lender]:
        return self.session.lenders

    def validate_patch(self, patch: Mapping[str, Any]) -> None:
        super().validate_patch(patch)
        if {"trust_balance", "trust_account_events"} & set(patch):
            raise ValidationError("Trust account changes must go through a trust transaction")

    async def record_transaction(
        self,
        lender_id: str,
        *,
        event_type: str,
        event_date: date,
        description: str,
        amount,
        related_loan_id: str | None = None,
        related_loan_code: str | None = None,
    ) -> Lender:
        """Post a trust movement optimistically, then through the RPC.

        A conflict discards the speculative lender and refetches it.
        """
        async with self.locked(lender_id):
            before = await self.resolve(lender_id)
            speculative, event = trust_ledger.record_transaction(
                before,
                event_type=event_type,
                event_date=event_date,
                description=description,
                amount=amount,
                related_loan_id=related_loan_id,
                related_loan_code=related_loan_code,
            )
            self.view.put(speculative)
            try:
                await self.rpc.add_trust_transaction(
                    lender_id,
                    event_type=event.event_type,
                    event_date=event.event_date,
                    description=event.description,
                    amount=event.amount,
                    related_loan_id=related_loan_id,
                    related_loan_code=related_loan_code,
                    expected_version=before.version,
                )
            except ConflictError:
                self.view.discard(lender_id)
                logger.warning("Trust transaction conflict on lender %s; refetching", lender_id)
                try:
                    await self.refresh(lender_id)
                except BackendError:
                    logger.warning("Refetch of lender %s failed after a conflict", lender_id, exc_info=True)
                raise
            except BackOfficeError:
                self.view.put(before)
                raise
            except Exception as exc:
                self.view.put(before)
                raise BackendError(str(exc) or type(exc).__name__) from exc

            confirmed = await self.refresh(lender_id)
            record_audit(
                actor_id=self.session.actor_id,
                action="lender.trust_transaction",
                resource_type=self.resource_type,
                resource_id=lender_id,
                old_value={"trust_balance": before.trust_balance},
                new_value={
                    "trust_balance": confirmed.trust_balance,
                    "event_type": event.event_type,
                    "amount": event.amount,
                },
            )
            return confirmed


class SessionRegistry:
    """Mutation sessions keyed by client session id, least recently used evicted first."""

    def __init__(self, max_sessions: int = 1024) -> None:
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, MutationSession] = OrderedDict()

    def session_for(self, session_id: str, identity: IdentityProvider) -> MutationSession:
        session = self._sessions.pop(session_id, None)
        if session is None:
            session = MutationSession(identity)
        else:
            session.identity = identity
        self._sessions[session_id] = session
        while len(self._sessions) > self.max_sessions:
            self._sessions.popitem(last=False)
        return session

    def __len__(self) -> int:
        return len(self._sessions)
