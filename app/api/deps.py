from dataclasses import dataclass
from uuid import uuid4

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import set_actor_id
from app.db.session import get_db
from app.services import blob_store
from app.services.mutations import LenderOrchestrator, MutationSession, ProspectOrchestrator, SessionRegistry
from app.services.store import BlobStore, LenderStore, ProspectStore, UserStore


@dataclass(slots=True)
class SessionContext:
    """Acting user for one request; authentication happens upstream."""

    user_id: str
    user_name: str
    session_id: str

    def current_user(self) -> tuple[str, str]:
        return self.user_id, self.user_name


async def get_session_context(
    user_id: str | None = Header(default=None, alias="X-User-ID"),
    user_name: str | None = Header(default=None, alias="X-User-Name"),
    session_id: str | None = Header(default=None, alias="X-Session-ID"),
) -> SessionContext:
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "X-User-ID header is required"},
        )
    set_actor_id(user_id)
    return SessionContext(
        user_id=user_id,
        user_name=user_name or user_id,
        session_id=session_id or str(uuid4()),
    )


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.mutation_sessions


async def get_mutation_session(
    ctx: SessionContext = Depends(get_session_context),
    registry: SessionRegistry = Depends(get_session_registry),
) -> MutationSession:
    return registry.session_for(ctx.session_id, ctx)


async def get_prospect_orchestrator(
    db: AsyncSession = Depends(get_db_session),
    session: MutationSession = Depends(get_mutation_session),
) -> ProspectOrchestrator:
    return ProspectOrchestrator(ProspectStore(db), UserStore(db), session)


async def get_lender_orchestrator(
    db: AsyncSession = Depends(get_db_session),
    session: MutationSession = Depends(get_mutation_session),
) -> LenderOrchestrator:
    store = LenderStore(db)
    return LenderOrchestrator(store, store, session)


def get_blob_store() -> BlobStore:
    return blob_store.get_blob_store()
