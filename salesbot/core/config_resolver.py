"""
Read-through cache over the chatbot configuration.

Reads are served from an in-process snapshot refreshed every
``CONFIG_CACHE_TTL_SEC``. Writes made through *this* resolver refresh the
snapshot immediately; writes made through another resolver (another worker
process) become visible after at most one TTL window. That window is
accepted staleness, not a bug.

Device scoping: rows for the requested device are checked before global rows
(``deviceId is None``); inside each tier, creation order wins.
"""
import threading
import time
from typing import Dict, Iterable, List, Optional

from salesbot.core.profiles import DEFAULT_COMMANDS
from salesbot.observability.logging import log
from salesbot.settings import settings
from salesbot.store import config_repo as cr
from salesbot.store.models import (
    AgentCommandDefinition,
    CommandDefinition,
    CustomFlowDefinition,
    QuickReplyDefinition,
)


def matches_trigger(text: str, trigger: str, match_type: str) -> bool:
    value = (text or "").lower()
    target = (trigger or "").lower()
    if not target:
        return False
    if match_type == "exact":
        return value == target
    if match_type == "starts_with":
        return value.startswith(target)
    return target in value


def _scoped(rows: Iterable, device_id: Optional[str]) -> List:
    """Device rows first, then global rows; rows of other devices dropped."""
    rows = list(rows)
    own = [r for r in rows if device_id and r.deviceId == device_id]
    shared = [r for r in rows if r.deviceId is None]
    return own + shared


class ConfigResolver:
    def __init__(self, repo: Optional[cr.ConfigRepository] = None, ttl_sec: Optional[float] = None):
        self.repo = repo or cr.ConfigRepository()
        self._ttl = ttl_sec
        self._snapshot: Dict[str, list] = {e: [] for e in cr.ENTITIES}
        self._last_refresh = 0.0
        self._guard = threading.Lock()

    @property
    def ttl(self) -> float:
        return float(self._ttl if self._ttl is not None else settings.CONFIG_CACHE_TTL_SEC)

    def refresh(self) -> None:
        fresh = {entity: self.repo.list(entity) for entity in cr.ENTITIES}
        with self._guard:
            self._snapshot = fresh
            self._last_refresh = time.monotonic()

    def _maybe_refresh(self) -> None:
        now = time.monotonic()
        if self._last_refresh and now - self._last_refresh < self.ttl:
            return
        try:
            self.refresh()
        except Exception as e:
            # Keep serving the previous snapshot; retry on the next read.
            with self._guard:
                self._last_refresh = now
            log(event="config_refresh_failed", errorType=type(e).__name__, error=str(e)[:200])

    def _rows(self, entity: str) -> list:
        self._maybe_refresh()
        with self._guard:
            return list(self._snapshot.get(entity) or [])

    # --- lookups ---------------------------------------------------------------
    def commands(self, device_id: Optional[str]) -> List[CommandDefinition]:
        rows = self._rows(cr.COMMANDS)
        if not rows:
            rows = DEFAULT_COMMANDS
        return _scoped(rows, device_id)

    def resolve_command(self, token: str, device_id: Optional[str]) -> Optional[CommandDefinition]:
        normalized = cr.normalize_token(token)
        if not normalized:
            return None
        for cmd in self.commands(device_id):
            if cmd.token == normalized:
                # first hit per tier decides, even when disabled
                return cmd if cmd.enabled else None
        return None

    def command_tokens(self, device_id: Optional[str]) -> List[str]:
        return [c.token for c in self.commands(device_id)]

    def find_quick_reply(self, text: str, device_id: Optional[str]) -> Optional[QuickReplyDefinition]:
        for qr in _scoped(self._rows(cr.QUICK_REPLIES), device_id):
            if qr.enabled and matches_trigger(text, qr.trigger, qr.matchType):
                return qr
        return None

    def find_flow_trigger(self, text: str, device_id: Optional[str]) -> Optional[CustomFlowDefinition]:
        for flow in _scoped(self._rows(cr.FLOWS), device_id):
            if not flow.enabled or not flow.stages:
                continue
            if any(matches_trigger(text, t, "includes") for t in flow.triggers):
                return flow
        return None

    def get_flow(self, flow_id: Optional[int], device_id: Optional[str]) -> Optional[CustomFlowDefinition]:
        for flow in _scoped(self._rows(cr.FLOWS), device_id):
            if flow.enabled and flow.id == flow_id:
                return flow
        return None

    def variables_map(self, device_id: Optional[str]) -> Dict[str, str]:
        out: Dict[str, str] = {}
        # global first so device values overwrite them
        for var in reversed(_scoped(self._rows(cr.VARIABLES), device_id)):
            out[var.name] = var.value
        return out

    def find_agent_command(self, text: str, device_id: Optional[str]) -> Optional[AgentCommandDefinition]:
        normalized = cr.normalize_agent_trigger(text)
        if not normalized:
            return None
        for cmd in _scoped(self._rows(cr.AGENT_COMMANDS), device_id):
            if cmd.enabled and cmd.trigger == normalized:
                return cmd
        return None

    # --- write-through ---------------------------------------------------------
    def list(self, entity: str, device_id: Optional[str] = None) -> list:
        rows = self._rows(entity)
        if device_id is None:
            return rows
        return [r for r in rows if r.deviceId in (None, device_id)]

    def create(self, entity: str, payload: dict):
        created = self.repo.create(entity, payload)
        self.refresh()
        return created

    def update(self, entity: str, row_id: int, payload: dict):
        updated = self.repo.update(entity, row_id, payload)
        self.refresh()
        return updated

    def delete(self, entity: str, row_id: int) -> bool:
        deleted = self.repo.delete(entity, row_id)
        self.refresh()
        return deleted
