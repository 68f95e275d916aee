from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


class InboundMessage(BaseModel):
    """One message event as delivered by the transport bridge."""
    deviceId: str
    channelId: str
    senderId: Optional[str] = None
    body: str = ""
    hasMedia: bool = False
    isFromSelf: bool = False
    messageId: Optional[str] = None
    quotedMessageRef: Optional[str] = None
    contactName: Optional[str] = None
    sessionName: Optional[str] = None
    devicePhone: Optional[str] = None
    isGroup: bool = False
    timestamp: Optional[Any] = None


class EventResponse(BaseModel):
    status: Literal["processed", "ignored", "echo", "duplicate", "error"] = "processed"
    handled: bool = False
    reason: Optional[str] = None
    replies: List[str] = Field(default_factory=list)


class CommandPayload(BaseModel):
    token: Optional[str] = None
    flowName: Optional[str] = None
    enabled: Optional[bool] = None
    deviceId: Optional[str] = None


class QuickReplyPayload(BaseModel):
    trigger: Optional[str] = None
    responseTemplate: Optional[str] = None
    matchType: Optional[str] = None
    enabled: Optional[bool] = None
    deviceId: Optional[str] = None


class FlowPayload(BaseModel):
    name: Optional[str] = None
    triggers: Optional[List[str]] = None
    stages: Optional[List[str]] = None
    enabled: Optional[bool] = None
    deviceId: Optional[str] = None


class VariablePayload(BaseModel):
    name: Optional[str] = None
    value: Optional[str] = None
    deviceId: Optional[str] = None


class AgentCommandPayload(BaseModel):
    trigger: Optional[str] = None
    responseTemplate: Optional[str] = None
    commandType: Optional[str] = None
    enabled: Optional[bool] = None
    deviceId: Optional[str] = None


def payload_dict(payload: BaseModel) -> Dict[str, Any]:
    """Only the fields the caller actually sent (partial updates)."""
    return payload.model_dump(exclude_unset=True)
