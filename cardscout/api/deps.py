"""FastAPI dependencies."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from cardscout.api.identity import IdentityClient, Owner
from cardscout.db.store import RecordStore
from cardscout.errors import SetupError, StoreError
from cardscout.worker.cycle_lock import CycleLockManager
from cardscout.worker.tasks import PipelineRunner


def get_store(request: Request) -> RecordStore:
    """Dependency for the record store built at startup."""
    return request.app.state.store


def get_runner(request: Request) -> PipelineRunner:
    """Dependency for the pipeline runner built at startup."""
    return request.app.state.runner


def get_identity_client(request: Request) -> IdentityClient:
    return request.app.state.identity_client


async def require_owner(
    authorization: Optional[str] = Header(None),
    identity: IdentityClient = Depends(get_identity_client),
    store: RecordStore = Depends(get_store),
) -> str:
    """
    Dependency to require a bearer token that resolves to an owner.

    Raises:
        HTTPException: 401 if the header is missing or the token is rejected
        IdentityError: identity provider unreachable (mapped to 503)
    """
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
        )

    owner: Optional[Owner] = await identity.resolve(token.strip())
    if owner is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    try:
        await store.ensure_owner(owner.id, owner.email)
    except StoreError as e:
        raise SetupError(str(e)) from e
    return owner.id


def get_lock_manager(request: Request) -> CycleLockManager:
    return request.app.state.lock_manager
