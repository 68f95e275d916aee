from typing import Any, Dict, Optional, Tuple

from salesbot.api.schemas import InboundMessage
from salesbot.clients.provisioning import ProvisioningClient
from salesbot.clients.transport import HttpTransport, QuotedMessage
from salesbot.core import phrases as ph
from salesbot.core.agent_commands import run_agent_command
from salesbot.core.config_resolver import ConfigResolver
from salesbot.core.echo import EchoSuppressor
from salesbot.core.flow_engine import COMMAND_PREFIX, FlowEngine, Turn
from salesbot.core.follow_up import FollowUpScheduler
from salesbot.core.profiles import APP_PROFILES, FLOW_IBO
from salesbot.errors import SessionNotFound
from salesbot.intel.ocr import TesseractOcr
from salesbot.observability.audit import (
    CONTACT_TYPE_CONTACT,
    ORIGIN_AGENT,
    ORIGIN_BOT,
    ORIGIN_CONTACT,
    record_interaction,
)
from salesbot.observability.logging import log
from salesbot.settings import settings
from salesbot.store.models import FollowUpRecord
from salesbot.store.state_store import ConversationStateStore
from salesbot.utils.lock import device_lock
from salesbot.utils.phone import digits_only, is_group_channel, normalize_to_e164_br


def _result(status: str, handled: bool = False, reason: Optional[str] = None, turn: Optional[Turn] = None) -> Dict[str, Any]:
    return {
        "status": status,
        "handled": handled,
        "reason": reason,
        "replies": list(turn.replies) if turn else [],
    }


class ConversationEngine:
    """
    Entry point for message events.

    Events of one device run one at a time (``device_lock``); state of
    different contacts never shares a key, so a failure while handling one
    contact leaves every other contact untouched.
    """

    def __init__(self, store=None, resolver=None, transport=None, ocr=None, provisioning=None,
                 follow_ups=None, echo=None):
        self.store = store or ConversationStateStore()
        self.resolver = resolver or ConfigResolver()
        self.transport = transport or HttpTransport()
        self.echo = echo or EchoSuppressor()
        self.follow_ups = follow_ups or FollowUpScheduler()
        self.flow = FlowEngine(
            store=self.store,
            resolver=self.resolver,
            transport=self.transport,
            ocr=ocr or TesseractOcr(),
            provisioning=provisioning or ProvisioningClient(),
            follow_ups=self.follow_ups,
            echo=self.echo,
        )

    # ------------------------------------------------------------------
    def handle_event(self, msg: InboundMessage) -> Dict[str, Any]:
        if not msg.deviceId or not msg.channelId:
            return _result("ignored", reason="missing_ids")

        with device_lock(msg.deviceId):
            try:
                if msg.isFromSelf:
                    return self._handle_self(msg)
                return self._handle_contact(msg)
            except Exception as e:
                log(
                    event="event_processing_failed",
                    deviceId=msg.deviceId,
                    channelId=msg.channelId,
                    messageId=msg.messageId,
                    errorType=type(e).__name__,
                    error=str(e)[:300],
                )
                raise

    def _turn(self, msg: InboundMessage, phone: str, origin: str) -> Turn:
        return Turn(
            device_id=msg.deviceId,
            chat_id=msg.channelId,
            phone=phone,
            phone_e164=normalize_to_e164_br(phone) or "",
            name=(msg.contactName or "").strip() or self.store.name_for(msg.deviceId, msg.channelId),
            message_ref=msg.messageId,
            session_name=msg.sessionName or msg.deviceId,
            device_phone=digits_only(msg.devicePhone) or settings.DEVICE_PHONE,
            origin=origin,
            contact_type=CONTACT_TYPE_CONTACT,
        )

    # ------------------------------------------------------------------
    # Contact path
    # ------------------------------------------------------------------
    def _handle_contact(self, msg: InboundMessage) -> Dict[str, Any]:
        if msg.isGroup or is_group_channel(msg.channelId):
            return _result("ignored", reason="group")

        phone = digits_only(msg.senderId or msg.channelId)
        if normalize_to_e164_br(phone):
            self.store.remember_phone(msg.deviceId, msg.channelId, phone)
        self.store.remember_name(msg.deviceId, msg.channelId, (msg.contactName or "").strip())

        turn = self._turn(msg, phone, ORIGIN_CONTACT)
        self.flow.audit(turn, "message_received", msg.body, origin=ORIGIN_CONTACT, hasMedia=msg.hasMedia)

        if msg.hasMedia:
            handled = self.flow.on_contact_media(turn)
        else:
            handled = self.flow.on_contact_text(turn, msg.body)
        return _result("processed", handled=handled, turn=turn)

    # ------------------------------------------------------------------
    # Self path (echoes and human agent messages)
    # ------------------------------------------------------------------
    def _handle_self(self, msg: InboundMessage) -> Dict[str, Any]:
        by_id = self.echo.was_sent_id(msg.messageId)
        by_body = self.echo.was_sent(msg.channelId, msg.body)
        if by_id or by_body:
            log(event="echo_suppressed", deviceId=msg.deviceId, channelId=msg.channelId, messageId=msg.messageId)
            return _result("echo")

        if not self.echo.mark_agent_processed(msg.messageId):
            return _result("duplicate")

        if msg.isGroup or is_group_channel(msg.channelId):
            return _result("ignored", reason="group")

        phone, quoted = self._resolve_agent_phone(msg)
        turn = self._turn(msg, phone, ORIGIN_AGENT)
        if not turn.phone_e164:
            self.flow.audit(turn, "agent_message", msg.body, origin=ORIGIN_AGENT,
                            error_type="PHONE_NOT_FOUND", error_details=f"channel {msg.channelId}")
            return _result("processed", reason="phone_not_found", turn=turn)

        self.flow.audit(turn, "agent_message", msg.body, origin=ORIGIN_AGENT, hasMedia=msg.hasMedia)
        handled = self._agent_message(turn, msg, quoted)
        return _result("processed", handled=handled, turn=turn)

    def _resolve_agent_phone(self, msg: InboundMessage) -> Tuple[str, Optional[QuotedMessage]]:
        """Quoted contact message first, then the channel cache, then the channel id."""
        quoted = None
        own = digits_only(msg.devicePhone) or settings.DEVICE_PHONE
        if msg.quotedMessageRef:
            quoted = self.transport.get_quoted_message(msg.deviceId, msg.quotedMessageRef)
            if quoted is not None:
                candidate = digits_only(quoted.senderId)
                if candidate and candidate != own and normalize_to_e164_br(candidate):
                    self.store.remember_phone(msg.deviceId, msg.channelId, candidate)
                    return candidate, quoted

        cached = self.store.phone_for(msg.deviceId, msg.channelId)
        if cached and normalize_to_e164_br(cached):
            return cached, quoted
        return digits_only(msg.channelId), quoted

    def _agent_message(self, turn: Turn, msg: InboundMessage, quoted: Optional[QuotedMessage]) -> bool:
        body = (msg.body or "").strip()

        if body.startswith(COMMAND_PREFIX):
            cmd = self.resolver.find_agent_command(body, turn.device_id)
            if cmd is not None:
                try:
                    run_agent_command(self.flow, turn, cmd)
                except Exception as e:
                    log(event="agent_command_failed", trigger=cmd.trigger, errorType=type(e).__name__, error=str(e)[:300])
                    self.flow.audit(turn, "agent_command", error_type="AGENT_COMMAND_ERROR", error_details=str(e)[:300])
                return True

        instructed = False
        if ph.is_identifier_instruction(body):
            self.flow.start_identifier_proof(turn, confirming=ph.needs_open_confirmation(body))
            instructed = True
        if ph.is_lazer_instruction(body):
            self.flow.start_lazer(turn)
            instructed = True

        if body.startswith(COMMAND_PREFIX):
            token = body.split()[0]
            command = self.resolver.resolve_command(token, turn.device_id)
            if command is None:
                log(event="command_unknown", deviceId=turn.device_id, token=token[:40])
                return instructed
            log(event="command_resolved", deviceId=turn.device_id, token=command.token, flow=command.flowName)
            if command.flowName == FLOW_IBO:
                self.flow.handle_ibo_command(turn, body, msg.hasMedia, quoted)
            else:
                self.flow.respond_with_trial(turn, APP_PROFILES[command.flowName])
            return True

        if self.flow.resolve_pending_from_agent(turn, body, quoted):
            return True
        return instructed

    # ------------------------------------------------------------------
    # Follow-up delivery
    # ------------------------------------------------------------------
    def send_follow_up(self, rec: FollowUpRecord, text: str) -> None:
        """Sender for the follow-up scheduler. Raises while the session cannot send."""
        if not rec.deviceId:
            raise SessionNotFound(f"follow-up {rec.key} has no device")
        self.transport.ensure_ready(rec.deviceId)
        self.echo.mark_sent(rec.chatId, text)
        message_id = self.transport.send(rec.deviceId, rec.chatId, text)
        self.echo.mark_sent_id(message_id)
        record_interaction(
            rec.deviceId, rec.contactPhone, rec.clientName, CONTACT_TYPE_CONTACT,
            ORIGIN_BOT, "follow_up_sent", text,
        )
