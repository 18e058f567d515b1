from __future__ import annotations

from fastapi import APIRouter, Response, status

from marketplace_chat.api.deps import CurrentIdentity, PipelineDep, UoWDep
from marketplace_chat.api.v1.schemas.common import ApiResponse
from marketplace_chat.api.v1.schemas.conversation import (
    ConversationCreated,
    ConversationList,
    ConversationOut,
    CreateConversationRequest,
    UnreadCount,
)

router = APIRouter(prefix="/api/v1/chat", tags=["conversations"])


@router.get("/conversations", response_model=ApiResponse[ConversationList])
async def list_conversations(
    identity: CurrentIdentity,
    uow: UoWDep,
    pipeline: PipelineDep,
) -> ApiResponse[ConversationList]:
    summaries = await pipeline.list_conversations(uow, identity)
    return ApiResponse[ConversationList](
        data=ConversationList(
            conversations=[ConversationOut.model_validate(s) for s in summaries],
        ),
    )


@router.post(
    "/conversations",
    response_model=ApiResponse[ConversationCreated],
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    body: CreateConversationRequest,
    identity: CurrentIdentity,
    uow: UoWDep,
    pipeline: PipelineDep,
    response: Response,
) -> ApiResponse[ConversationCreated]:
    conversation, created = await pipeline.start_conversation(uow, identity, body.vendor_id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return ApiResponse[ConversationCreated](
        data=ConversationCreated(conversation_id=conversation.id, created=created),
    )


@router.get("/unread-count", response_model=ApiResponse[UnreadCount])
async def unread_count(
    identity: CurrentIdentity,
    uow: UoWDep,
    pipeline: PipelineDep,
) -> ApiResponse[UnreadCount]:
    total = await pipeline.unread_total(uow, identity)
    return ApiResponse[UnreadCount](data=UnreadCount(unread_count=total))
