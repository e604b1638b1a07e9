"""HTTP endpoints for the desktop window."""

import base64
import binascii
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request

from saiman import __version__
from saiman.models.conversation import (
    AttachmentUpload,
    CancelResponse,
    ConversationDetail,
    HealthResponse,
    SendMessageRequest,
    SendMessageResponse,
    UsageResponse,
)
from saiman.models.messages import Conversation, Message
from saiman.services.container import Services
from saiman.services.conversation import (
    ConversationBusyError,
    ConversationNotFoundError,
    EmptyMessageError,
    PendingAttachment,
    TooManyAttachmentsError,
)
from saiman.services.usage import format_count
from saiman.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


def _decode_attachments(uploads: list[AttachmentUpload]) -> list[PendingAttachment]:
    pending = []
    for upload in uploads:
        try:
            data = base64.b64decode(upload.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise HTTPException(status_code=400, detail=f"Attachment {upload.filename} is not valid base64") from e
        pending.append(PendingAttachment(filename=upload.filename, data=data))
    return pending


async def _send(services: Services, conversation_id: str | None, request: SendMessageRequest) -> SendMessageResponse:
    attachments = _decode_attachments(request.attachments)
    try:
        result = await services.conversations.send_message(conversation_id, request.message, attachments)
    except (EmptyMessageError, TooManyAttachmentsError) as e:
        logger.warning(f"Rejected message: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ConversationBusyError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    return SendMessageResponse(
        conversation=result.conversation,
        user_message=result.user_message,
        assistant_message=result.assistant_message,
        cancelled=result.assistant_message is None,
    )


@router.post("/conversations/messages", response_model=SendMessageResponse, tags=["Conversation"])
async def send_to_new_conversation(
    request: SendMessageRequest, services: Services = Depends(get_services)
) -> SendMessageResponse:
    """Start a conversation with its first message and wait for the reply."""
    return await _send(services, None, request)


@router.post("/conversations/{conversation_id}/messages", response_model=SendMessageResponse, tags=["Conversation"])
async def send_message(
    conversation_id: str, request: SendMessageRequest, services: Services = Depends(get_services)
) -> SendMessageResponse:
    """Continue a conversation and wait for the reply."""
    return await _send(services, conversation_id, request)


@router.post("/conversations/{conversation_id}/cancel", response_model=CancelResponse, tags=["Conversation"])
async def cancel_request(conversation_id: str, services: Services = Depends(get_services)) -> CancelResponse:
    """Cancel the in-flight request and hand back what the user sent."""
    cancelled = services.conversations.cancel_request(conversation_id)
    if cancelled is None:
        return CancelResponse(cancelled=False)
    return CancelResponse(
        cancelled=True,
        restored_text=cancelled.text,
        restored_attachments=[
            AttachmentUpload(filename=item.filename, data=base64.b64encode(item.data).decode("ascii"))
            for item in cancelled.attachments
        ],
        conversation_deleted=cancelled.conversation_deleted,
    )


@router.get("/conversations", response_model=list[Conversation], tags=["Conversation"])
async def list_conversations(query: str = "", services: Services = Depends(get_services)) -> list[Conversation]:
    """Search titles and messages; an empty query lists the most recent conversations."""
    return services.conversations.search_conversations(query)


@router.get("/conversations/recent", response_model=Conversation | None, tags=["Conversation"])
async def most_recent_conversation(services: Services = Depends(get_services)) -> Conversation | None:
    """The conversation to reopen, or null when the latest one has gone stale."""
    return services.conversations.load_most_recent_conversation()


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail, tags=["Conversation"])
async def get_conversation(conversation_id: str, services: Services = Depends(get_services)) -> ConversationDetail:
    conversation = services.store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    return ConversationDetail(
        conversation=conversation, is_loading=services.conversations.is_loading(conversation_id)
    )


@router.get("/conversations/{conversation_id}/messages", response_model=list[Message], tags=["Conversation"])
async def get_messages(conversation_id: str, services: Services = Depends(get_services)) -> list[Message]:
    if services.store.get_conversation(conversation_id) is None:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    return services.store.get_messages(conversation_id)


@router.delete("/conversations/{conversation_id}", status_code=204, tags=["Conversation"])
async def delete_conversation(conversation_id: str, services: Services = Depends(get_services)) -> None:
    try:
        services.conversations.delete_conversation(conversation_id)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.get("/usage", response_model=UsageResponse, tags=["Health"])
async def usage(services: Services = Depends(get_services)) -> UsageResponse:
    """Cumulative token usage."""
    totals = services.tracker.totals
    return UsageResponse(
        total_input_tokens=totals.total_input_tokens,
        total_output_tokens=totals.total_output_tokens,
        formatted_input=format_count(totals.total_input_tokens),
        formatted_output=format_count(totals.total_output_tokens),
    )


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(services: Services = Depends(get_services)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
        configured=services.settings.is_configured,
        missing_configuration=services.settings.missing_configuration,
    )
