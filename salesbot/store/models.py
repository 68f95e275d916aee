from dataclasses import dataclass, field
from typing import List, Optional

from salesbot.core import states as st


@dataclass
class ConversationState:
    kind: str = st.IDLE
    # AWAITING_IDENTIFIER_PROOF
    printReminderSent: bool = False
    confirming: bool = False
    confirmingSinceMs: int = 0
    identifier: Optional[str] = None
    # CUSTOM_FLOW
    flowId: Optional[int] = None
    flowName: Optional[str] = None
    stageIndex: int = 0

    updatedAtMs: int = 0

    @property
    def is_idle(self) -> bool:
        return self.kind == st.IDLE


@dataclass
class PendingIdentifierRequest:
    chatId: str
    deviceId: str
    phone: str
    name: str = ""
    flow: str = st.PENDING_FLOW_IBO
    createdAtMs: int = 0


@dataclass
class CommandDefinition:
    id: int
    token: str
    flowName: str
    enabled: bool = True
    deviceId: Optional[str] = None


@dataclass
class QuickReplyDefinition:
    id: int
    trigger: str
    responseTemplate: str
    matchType: str = "includes"
    enabled: bool = True
    deviceId: Optional[str] = None


@dataclass
class CustomFlowDefinition:
    id: int
    name: str
    triggers: List[str] = field(default_factory=list)
    stages: List[str] = field(default_factory=list)
    enabled: bool = True
    deviceId: Optional[str] = None


@dataclass
class VariableDefinition:
    id: int
    name: str
    value: str
    deviceId: Optional[str] = None


@dataclass
class AgentCommandDefinition:
    id: int
    trigger: str
    responseTemplate: str
    commandType: str = "reply"  # reply / test
    enabled: bool = True
    deviceId: Optional[str] = None


@dataclass
class FollowUpRecord:
    id: str
    contactPhone: str
    chatId: str
    createdAt: str  # ISO-8601
    clientName: str = ""
    sessionName: str = ""
    deviceId: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.sessionName}|{self.chatId}"
