"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from marketplace_chat.application.dto.identity import Identity
from marketplace_chat.application.exceptions import AuthenticationError
from marketplace_chat.application.ports.auth import TokenVerifier
from marketplace_chat.application.uow import UnitOfWork
from marketplace_chat.services.message_service import MessagePipeline

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_uow(request: Request) -> AsyncIterator[UnitOfWork]:
    async with request.app.state.uow_factory() as uow:
        yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]


def get_verifier(request: Request) -> TokenVerifier:
    return request.app.state.verifier


def get_pipeline(request: Request) -> MessagePipeline:
    return request.app.state.pipeline


PipelineDep = Annotated[MessagePipeline, Depends(get_pipeline)]


async def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_verifier)],
) -> Identity:
    if credentials is None:
        raise AuthenticationError("Authentication required")
    return await verifier.verify(credentials.credentials)


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
