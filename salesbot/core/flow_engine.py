"""
Per-contact state machine.

Contact messages advance the built-in provisioning flows (phone app proof,
lazer screen photos), operator-defined custom flows, or fall through to quick
replies. Agent messages start flows and resolve pending identifier requests.
Every outbound message goes through ``reply`` so it is fingerprinted for echo
suppression and audited.

Provisioning, OCR and send failures never escape this module: they degrade to
a fixed reply and a typed audit event.
"""
from dataclasses import dataclass, field, replace
from typing import List, Optional

from salesbot.core import phrases as ph
from salesbot.core import states as st
from salesbot.core.profiles import (
    APP_PROFILES,
    CELULAR_APP_NAME,
    FLOW_LAZER,
    IBO_APP_NAME,
    ProductProfile,
    identifier_label,
)
from salesbot.core.templates import render_template
from salesbot.errors import InfrastructureFailure, MediaDownloadFailure, SendFailure
from salesbot.intel.identifier import extract_identifier
from salesbot.intel.ocr import OCR_ERROR, OcrOutcome, read_identifier_from_image, read_text_from_image
from salesbot.intel.text_blocks import (
    Credentials,
    detect_limit_reached,
    extract_credentials,
    extract_playlist_url,
    filter_block,
    strip_tokens,
    username_from_playlist_url,
)
from salesbot.observability.audit import (
    CONTACT_TYPE_CONTACT,
    ORIGIN_BOT,
    ORIGIN_CONTACT,
    record_interaction,
)
from salesbot.observability.logging import log
from salesbot.settings import settings
from salesbot.store.models import ConversationState, PendingIdentifierRequest
from salesbot.store.state_store import ConversationStateStore
from salesbot.utils.phone import normalize_to_e164_br
from salesbot.utils.text import fold_upper
from salesbot.utils.time import now_ms

COMMAND_PREFIX = "#"
MEDIA_DOWNLOAD_ERROR = "MEDIA_DOWNLOAD_ERROR"


@dataclass
class Turn:
    """Everything the engine knows about the contact an event is about."""

    device_id: str
    chat_id: str
    phone: str
    phone_e164: str
    name: str = ""
    message_ref: Optional[str] = None
    session_name: str = ""
    device_phone: str = ""
    origin: str = ORIGIN_CONTACT
    contact_type: str = CONTACT_TYPE_CONTACT
    replies: List[str] = field(default_factory=list)

    @property
    def key(self):
        return (self.device_id, self.phone)


def format_trial_message(display_name: str, code: Optional[str], creds: Credentials) -> str:
    parts = [display_name, ""]
    if code:
        parts.append(f"Cod: {code}")
    if creds.username:
        parts.append(f"Usuario: {creds.username}")
    if creds.password:
        parts.append(f"Senha: {creds.password}")
    return "\n".join(parts)


class FlowEngine:
    def __init__(self, store: ConversationStateStore, resolver, transport, ocr, provisioning, follow_ups, echo):
        self.store = store
        self.resolver = resolver
        self.transport = transport
        self.ocr = ocr
        self.provisioning = provisioning
        self.follow_ups = follow_ups
        self.echo = echo

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------
    def audit(self, turn: Turn, event_type: str, content: str = "", origin: Optional[str] = None,
              error_type: Optional[str] = None, error_details: Optional[str] = None, **extra) -> None:
        record_interaction(
            turn.device_id,
            turn.phone_e164,
            turn.name,
            turn.contact_type,
            origin or ORIGIN_BOT,
            event_type,
            content,
            error_type=error_type,
            error_details=error_details,
            **extra,
        )

    def reply(self, turn: Turn, text: str) -> Optional[str]:
        if not text:
            return None
        # fingerprint before sending: the echo can arrive before send() returns
        self.echo.mark_sent(turn.chat_id, text)
        turn.replies.append(text)
        try:
            message_id = self.transport.send(turn.device_id, turn.chat_id, text, quoted_ref=turn.message_ref)
        except SendFailure as e:
            log(event="send_failed", deviceId=turn.device_id, chatId=turn.chat_id, content=text, error=e.details)
            self.audit(turn, "message_sent", text, error_type="SEND_ERROR", error_details=e.details)
            return None
        self.echo.mark_sent_id(message_id)
        log(event="message_sent", deviceId=turn.device_id, chatId=turn.chat_id, messageId=message_id, content=text)
        self.audit(turn, "message_sent", text)
        return message_id

    def schedule_follow_up(self, turn: Turn) -> None:
        if not turn.chat_id or not turn.phone_e164:
            return
        try:
            self.follow_ups.schedule(
                contact_phone=turn.phone_e164,
                chat_id=turn.chat_id,
                client_name=turn.name,
                session_name=turn.session_name,
                device_id=turn.device_id,
            )
        except Exception as e:
            log(event="follow_up_schedule_failed", chatId=turn.chat_id, errorType=type(e).__name__, error=str(e)[:300])

    def _set_state(self, turn: Turn, state: ConversationState) -> None:
        self.store.set(turn.key, state)
        log(event="state_changed", deviceId=turn.device_id, phone=turn.phone, state=state.kind)

    def _clear_state(self, turn: Turn) -> None:
        self.store.clear(turn.key)
        log(event="state_changed", deviceId=turn.device_id, phone=turn.phone, state=st.IDLE)

    # ------------------------------------------------------------------
    # OCR
    # ------------------------------------------------------------------
    def _download(self, turn: Turn, ref: Optional[str]) -> Optional[bytes]:
        if not ref:
            raise MediaDownloadFailure("message has no media reference")
        return self.transport.download_media(turn.device_id, ref)

    def read_identifier(self, turn: Turn, ref: Optional[str]) -> OcrOutcome:
        try:
            data = self._download(turn, ref)
        except MediaDownloadFailure as e:
            return OcrOutcome(ok=False, errorType=MEDIA_DOWNLOAD_ERROR, details=e.details)
        outcome = read_identifier_from_image(self.ocr, data, deviceId=turn.device_id, messageRef=ref)
        log(
            event="ocr_identifier_result",
            deviceId=turn.device_id,
            chatId=turn.chat_id,
            ok=outcome.ok,
            identifier=outcome.identifier,
            outcome=outcome.errorType,
            ocrText=outcome.sample,
        )
        return outcome

    def read_text(self, turn: Turn, ref: Optional[str]) -> OcrOutcome:
        try:
            data = self._download(turn, ref)
        except MediaDownloadFailure as e:
            return OcrOutcome(ok=False, errorType=MEDIA_DOWNLOAD_ERROR, details=e.details)
        return read_text_from_image(self.ocr, data, deviceId=turn.device_id, messageRef=ref)

    def report_ocr(self, turn: Turn, outcome: OcrOutcome) -> None:
        if outcome.ok:
            return
        details = outcome.details
        if outcome.sample:
            details = f"{details} | text: {outcome.sample}"
        if outcome.errorType in (OCR_ERROR, MEDIA_DOWNLOAD_ERROR):
            self.audit(turn, "ocr_failed", error_type=outcome.errorType, error_details=details)
        else:
            # nothing readable / no identifier: expected outcome, not an error
            self.audit(turn, "ocr_no_identifier", content=outcome.errorType or "", ocrOutcome=outcome.errorType,
                       usedFallbackPass=outcome.usedFallbackPass, usedRotation=outcome.usedRotation)

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------
    def provision(self, turn: Turn, app_name: str, label: str) -> Optional[str]:
        if not turn.phone_e164:
            self.audit(turn, "trial_failed", error_type="PHONE_NOT_FOUND", error_details="contact phone not resolved")
            return None
        try:
            return self.provisioning.request_trial(
                product_name=app_name,
                device_phone=turn.device_phone or settings.DEVICE_PHONE,
                contact_name=turn.name,
                contact_phone_e164=turn.phone_e164,
                label=label,
            )
        except InfrastructureFailure as e:
            log(event="provisioning_degraded", deviceId=turn.device_id, appName=app_name, reason=e.reason)
            self.audit(turn, "trial_failed", error_type=e.reason, error_details=e.details, app=app_name)
            return None

    def handle_limit(self, turn: Turn, reply_text: str) -> bool:
        """Upstream refused (daily limit): clear whatever flow was active and hand off."""
        if not detect_limit_reached(reply_text):
            return False
        self._clear_state(turn)
        self.reply(turn, ph.MSG_LIMIT_REACHED)
        self.audit(turn, "trial_limit_reached")
        return True

    def respond_with_trial(self, turn: Turn, profile: ProductProfile) -> None:
        """Shared trial routine for every keyword-based product."""
        reply_text = self.provision(turn, profile.app_name, profile.app_name)
        if reply_text is None:
            self.reply(turn, ph.MSG_FALLBACK)
            return
        if self.handle_limit(turn, reply_text):
            return

        block = filter_block(reply_text, profile.keyword)
        if block is None:
            message = None
            if profile.fallback_full_text:
                creds = extract_credentials(reply_text)
                code = profile.default_code or creds.code
                if code or creds.username or creds.password:
                    message = format_trial_message(profile.display_name, code, creds)
            if message is None:
                self.reply(turn, ph.MSG_NO_CONTENT.format(keyword=profile.keyword))
                return
        else:
            cleaned = strip_tokens(block, profile.keyword, self.resolver.command_tokens(turn.device_id))
            creds = extract_credentials(cleaned)
            code = profile.default_code or creds.code
            if code or creds.username or creds.password:
                message = format_trial_message(profile.display_name, code, creds)
            else:
                message = cleaned

        self.reply(turn, message)
        self.audit(turn, "trial_generated", app=profile.key)
        self.schedule_follow_up(turn)

    def provision_identifier(self, turn: Turn, identifier: str, app_name: str) -> bool:
        reply_text = self.provision(turn, app_name, identifier_label(app_name, identifier))
        if reply_text is None:
            self.reply(turn, ph.MSG_FALLBACK)
            return False
        if self.handle_limit(turn, reply_text):
            return False

        playlist = extract_playlist_url(reply_text)
        if playlist:
            log(
                event="playlist_extracted",
                deviceId=turn.device_id,
                identifier=identifier,
                username=username_from_playlist_url(playlist) or turn.name or turn.phone,
            )
        else:
            log(event="playlist_missing", deviceId=turn.device_id, identifier=identifier, app=app_name)

        self.reply(turn, ph.MSG_IBO_OK)
        self.audit(turn, "trial_generated", app=app_name, identifier=identifier)
        return True

    # ------------------------------------------------------------------
    # Identifier acquisition
    # ------------------------------------------------------------------
    def register_pending(self, turn: Turn, flow: str) -> None:
        existing = self.store.get_pending(turn.device_id, turn.chat_id)
        if existing is not None:
            return
        self.store.put_pending(PendingIdentifierRequest(
            chatId=turn.chat_id,
            deviceId=turn.device_id,
            phone=turn.phone,
            name=turn.name,
            flow=flow,
        ))
        log(event="pending_identifier_registered", deviceId=turn.device_id, chatId=turn.chat_id, flow=flow)

    def _turn_for_pending(self, turn: Turn, pending: PendingIdentifierRequest) -> Turn:
        if pending.phone == turn.phone and (turn.name or not pending.name):
            return turn
        return replace(
            turn,
            phone=pending.phone,
            phone_e164=normalize_to_e164_br(pending.phone) or "",
            name=pending.name or turn.name,
            replies=turn.replies,
        )

    def resolve_pending(self, turn: Turn, pending: PendingIdentifierRequest, identifier: str) -> None:
        self.store.pop_pending(pending.deviceId, pending.chatId)
        target = self._turn_for_pending(turn, pending)
        # the pending request wins over whatever the contact was waiting on
        self._clear_state(target)
        log(event="pending_identifier_resolved", deviceId=turn.device_id, chatId=pending.chatId, flow=pending.flow)

        app_name = CELULAR_APP_NAME if pending.flow == st.PENDING_FLOW_CELULAR else IBO_APP_NAME
        ok = self.provision_identifier(target, identifier, app_name)
        if ok and pending.flow == st.PENDING_FLOW_CELULAR:
            self.schedule_follow_up(target)

    def acquire_identifier(self, turn: Turn, identifier: str) -> None:
        pending = self.store.get_pending(turn.device_id, turn.chat_id)
        if pending is not None:
            self.resolve_pending(turn, pending, identifier)
            return
        self.provision_identifier(turn, identifier, IBO_APP_NAME)

    def handle_ibo_command(self, turn: Turn, body: str, has_media: bool, quoted=None) -> None:
        if has_media:
            outcome = self.read_identifier(turn, turn.message_ref)
            if outcome.ok:
                self.acquire_identifier(turn, outcome.identifier)
                return
            self.report_ocr(turn, outcome)
            self.register_pending(turn, st.PENDING_FLOW_IBO)
            self.reply(turn, ph.MSG_OCR_FAILED_WAITING_AGENT)
            return

        inline = extract_identifier(body)
        if inline:
            self.acquire_identifier(turn, inline)
            return

        if quoted is not None and quoted.hasMedia:
            outcome = self.read_identifier(turn, quoted.id)
            if outcome.ok:
                self.acquire_identifier(turn, outcome.identifier)
                return
            self.report_ocr(turn, outcome)

        self.register_pending(turn, st.PENDING_FLOW_IBO)
        self.reply(turn, ph.MSG_IBO_REASK)

    def resolve_pending_from_agent(self, turn: Turn, body: str, quoted=None) -> bool:
        """An agent message on a channel with a pending request may carry the identifier."""
        pending = self.store.get_pending(turn.device_id, turn.chat_id)
        if pending is None:
            return False
        identifier = extract_identifier(body)
        if not identifier and quoted is not None and quoted.hasMedia:
            outcome = self.read_identifier(turn, quoted.id)
            if outcome.ok:
                identifier = outcome.identifier
            else:
                self.report_ocr(turn, outcome)
        if not identifier:
            return False
        self.resolve_pending(turn, pending, identifier)
        return True

    # ------------------------------------------------------------------
    # Flow starts (agent instructions)
    # ------------------------------------------------------------------
    def start_identifier_proof(self, turn: Turn, confirming: bool = False) -> None:
        current = self.store.get(turn.key)
        if current.kind == st.AWAITING_IDENTIFIER_PROOF:
            # repeated instruction: keep the reminder flag so it is never sent twice
            log(event="flow_already_active", deviceId=turn.device_id, phone=turn.phone, state=current.kind)
            return
        self._set_state(turn, ConversationState(
            kind=st.AWAITING_IDENTIFIER_PROOF,
            printReminderSent=False,
            confirming=confirming,
            confirmingSinceMs=now_ms() if confirming else 0,
        ))
        log(event="flow_identified", flow="CELULAR", deviceId=turn.device_id, phone=turn.phone)

    def start_lazer(self, turn: Turn) -> None:
        current = self.store.get(turn.key)
        if current.kind in (st.AWAITING_PHOTO, st.AWAITING_PLAYLIST_CLICK):
            return
        self._set_state(turn, ConversationState(kind=st.AWAITING_PHOTO))
        log(event="flow_identified", flow="LAZER", deviceId=turn.device_id, phone=turn.phone)

    # ------------------------------------------------------------------
    # Contact media
    # ------------------------------------------------------------------
    def on_contact_media(self, turn: Turn) -> bool:
        state = self.store.get(turn.key)
        if state.kind in (st.AWAITING_PHOTO, st.AWAITING_PLAYLIST_CLICK):
            return self._lazer_photo(turn)

        pending = self.store.get_pending(turn.device_id, turn.chat_id)
        if pending is not None:
            outcome = self.read_identifier(turn, turn.message_ref)
            if outcome.ok:
                self.resolve_pending(turn, pending, outcome.identifier)
            else:
                # the agent already got the request; stay quiet towards the contact
                self.report_ocr(turn, outcome)
            return True

        if state.kind == st.AWAITING_IDENTIFIER_PROOF:
            return self._proof_photo(turn, state)
        return False

    def _proof_photo(self, turn: Turn, state: ConversationState) -> bool:
        outcome = self.read_identifier(turn, turn.message_ref)
        if outcome.ok:
            state.identifier = outcome.identifier
            state.confirming = False
            state.printReminderSent = True
            self._set_state(turn, state)
            if self.provision_identifier(turn, outcome.identifier, CELULAR_APP_NAME):
                self._clear_state(turn)
                self.schedule_follow_up(turn)
            return True

        self.report_ocr(turn, outcome)
        state.printReminderSent = True
        state.confirming = False
        self._set_state(turn, state)
        self.register_pending(turn, st.PENDING_FLOW_CELULAR)
        self.reply(turn, ph.MSG_OCR_FAILED_WAITING_AGENT)
        return True

    def _lazer_photo(self, turn: Turn) -> bool:
        outcome = self.read_text(turn, turn.message_ref)
        if not outcome.ok:
            self.report_ocr(turn, outcome)
            self.reply(turn, ph.MSG_LAZER_UNREADABLE)
            return True

        upper = fold_upper(outcome.text)
        has_list = "PLAYLIST" in upper or "LISTA" in upper
        has_code = "CODIGO" in upper or "CODE" in upper

        if has_list and not has_code:
            self._set_state(turn, ConversationState(kind=st.AWAITING_PLAYLIST_CLICK))
            self.reply(turn, ph.MSG_LAZER_CLICK_PLAYLIST)
            return True

        if has_code:
            self._clear_state(turn)
            if has_list:
                self.reply(turn, ph.MSG_LAZER_GENERATING)
            self.respond_with_trial(turn, APP_PROFILES[FLOW_LAZER])
            return True

        self.reply(turn, ph.MSG_LAZER_WRONG_SCREEN)
        return True

    # ------------------------------------------------------------------
    # Contact text
    # ------------------------------------------------------------------
    def on_contact_text(self, turn: Turn, text: str) -> bool:
        body = (text or "").strip()
        if body.startswith(COMMAND_PREFIX):
            # command tokens belong to the agent channel only
            log(event="contact_command_ignored", deviceId=turn.device_id, phone=turn.phone)
            return False
        lower = body.lower()
        state = self.store.get(turn.key)

        if state.kind == st.AWAITING_PLAYLIST_CLICK:
            self.reply(turn, ph.MSG_LAZER_REMIND_CLICK)
            return True
        if state.kind == st.AWAITING_PHOTO:
            self.reply(turn, ph.MSG_LAZER_ASK_PHOTO if ph.is_lazer_confirmation(body) else ph.MSG_LAZER_HOLD)
            return True
        if state.kind == st.AWAITING_IDENTIFIER_PROOF:
            if self._proof_text(turn, state, body):
                return True
            return self._quick_reply(turn, lower)
        if state.kind == st.CUSTOM_FLOW and self._advance_custom_flow(turn, state):
            return True

        if self._start_custom_flow(turn, lower):
            return True
        return self._quick_reply(turn, lower)

    def _confirmation_expired(self, state: ConversationState) -> bool:
        timeout_ms = int(settings.CONFIRM_TIMEOUT_SEC or 0) * 1000
        if timeout_ms <= 0 or not state.confirmingSinceMs:
            return False
        return now_ms() - state.confirmingSinceMs >= timeout_ms

    def _send_print_request_once(self, turn: Turn, state: ConversationState) -> None:
        if state.printReminderSent:
            self._set_state(turn, state)
            return
        state.printReminderSent = True
        self._set_state(turn, state)
        self.reply(turn, ph.MSG_ASK_PRINT)

    def _proof_text(self, turn: Turn, state: ConversationState, body: str) -> bool:
        if state.confirming:
            if self._confirmation_expired(state):
                log(event="confirmation_expired", deviceId=turn.device_id, phone=turn.phone)
                state.confirming = False
                state.confirmingSinceMs = 0
            elif ph.is_affirmative(body):
                state.confirming = False
                state.confirmingSinceMs = 0
                self._send_print_request_once(turn, state)
                return True
            elif ph.is_negative(body):
                self._clear_state(turn)
                self.reply(turn, ph.MSG_HANDOFF)
                self.audit(turn, "handoff", reason="negative_confirmation")
                return True
            else:
                return False

        self._send_print_request_once(turn, state)
        return True

    def _render(self, turn: Turn, template: str) -> str:
        variables = self.resolver.variables_map(turn.device_id)
        return render_template(template, name=turn.name, phone=turn.phone_e164 or turn.phone, variables=variables)

    def _start_custom_flow(self, turn: Turn, lower: str) -> bool:
        flow = self.resolver.find_flow_trigger(lower, turn.device_id)
        if flow is None:
            return False
        self.reply(turn, self._render(turn, flow.stages[0]))
        if len(flow.stages) > 1:
            self._set_state(turn, ConversationState(
                kind=st.CUSTOM_FLOW, flowId=flow.id, flowName=flow.name, stageIndex=0,
            ))
        self.audit(turn, "flow_started", flow=flow.name, stage="0")
        return True

    def _advance_custom_flow(self, turn: Turn, state: ConversationState) -> bool:
        flow = self.resolver.get_flow(state.flowId, turn.device_id)
        next_index = state.stageIndex + 1
        if flow is None or next_index >= len(flow.stages):
            self._clear_state(turn)
            return False

        self.reply(turn, self._render(turn, flow.stages[next_index]))
        if next_index + 1 >= len(flow.stages):
            self._clear_state(turn)
        else:
            state.stageIndex = next_index
            self._set_state(turn, state)
        self.audit(turn, "flow_stage", flow=flow.name, stage=str(next_index))
        return True

    def _quick_reply(self, turn: Turn, lower: str) -> bool:
        qr = self.resolver.find_quick_reply(lower, turn.device_id)
        if qr is None:
            return False
        self.reply(turn, self._render(turn, qr.responseTemplate))
        self.audit(turn, "quick_reply", quickReplyId=qr.id)
        return True
