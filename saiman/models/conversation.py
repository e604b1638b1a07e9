"""Request and response models for the local API."""

from datetime import datetime

from pydantic import BaseModel, Field

from saiman.models.messages import MAX_ATTACHMENTS_PER_MESSAGE, Conversation, Message


class AttachmentUpload(BaseModel):
    """An image sent inline with a message."""

    filename: str
    data: str = Field(description="Base64-encoded image bytes")


class SendMessageRequest(BaseModel):
    """Request model for sending a message."""

    message: str = ""
    attachments: list[AttachmentUpload] = Field(default_factory=list, max_length=MAX_ATTACHMENTS_PER_MESSAGE)


class SendMessageResponse(BaseModel):
    """Response model for a completed or cancelled exchange."""

    conversation: Conversation
    user_message: Message
    assistant_message: Message | None = None
    cancelled: bool = False


class CancelResponse(BaseModel):
    cancelled: bool
    restored_text: str | None = None
    restored_attachments: list[AttachmentUpload] = Field(default_factory=list)
    conversation_deleted: bool = False


class ConversationDetail(BaseModel):
    conversation: Conversation
    is_loading: bool = False


class UsageResponse(BaseModel):
    total_input_tokens: int
    total_output_tokens: int
    formatted_input: str
    formatted_output: str


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
    configured: bool
    missing_configuration: list[str] = Field(default_factory=list)
