from __future__ import annotations

from fastapi import APIRouter, Query, status

from marketplace_chat.api.deps import CurrentIdentity, PipelineDep, UoWDep
from marketplace_chat.api.v1.schemas.common import ApiResponse
from marketplace_chat.api.v1.schemas.message import (
    BulkReadReceipt,
    MessageList,
    MessageOut,
    MessageSent,
    ReadReceipt,
    SendMessageRequest,
)
from marketplace_chat.infrastructure.db.repositories._cursor import encode_cursor

router = APIRouter(prefix="/api/v1/chat/conversations", tags=["messages"])


@router.get("/{conversation_id}/messages", response_model=ApiResponse[MessageList])
async def list_messages(
    conversation_id: str,
    identity: CurrentIdentity,
    uow: UoWDep,
    pipeline: PipelineDep,
    cursor: str | None = Query(None),
    limit: int | None = Query(None, ge=1),
) -> ApiResponse[MessageList]:
    messages = await pipeline.list_messages(
        uow, identity, conversation_id, cursor=cursor, limit=limit,
    )
    next_cursor = None
    if messages and limit is not None and len(messages) == limit:
        last = messages[-1]
        next_cursor = encode_cursor(last.created_at, last.id)
    return ApiResponse[MessageList](
        data=MessageList(
            messages=[MessageOut.model_validate(m) for m in messages],
            next_cursor=next_cursor,
        ),
    )


@router.post(
    "/{conversation_id}/messages",
    response_model=ApiResponse[MessageSent],
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: str,
    body: SendMessageRequest,
    identity: CurrentIdentity,
    uow: UoWDep,
    pipeline: PipelineDep,
) -> ApiResponse[MessageSent]:
    message = await pipeline.send_message(
        uow, identity, conversation_id, body.content, body.client_msg_id,
    )
    return ApiResponse[MessageSent](data=MessageSent(message=MessageOut.model_validate(message)))


@router.put(
    "/{conversation_id}/messages/{message_id}/read",
    response_model=ApiResponse[ReadReceipt],
)
async def mark_message_read(
    conversation_id: str,
    message_id: str,
    identity: CurrentIdentity,
    uow: UoWDep,
    pipeline: PipelineDep,
) -> ApiResponse[ReadReceipt]:
    updated = await pipeline.mark_message_read(uow, identity, conversation_id, message_id)
    return ApiResponse[ReadReceipt](data=ReadReceipt(updated=updated))


@router.put("/{conversation_id}/read", response_model=ApiResponse[BulkReadReceipt])
async def mark_conversation_read(
    conversation_id: str,
    identity: CurrentIdentity,
    uow: UoWDep,
    pipeline: PipelineDep,
) -> ApiResponse[BulkReadReceipt]:
    count = await pipeline.mark_conversation_read(uow, identity, conversation_id)
    return ApiResponse[BulkReadReceipt](data=BulkReadReceipt(updated=count))
