"""
Admin-owned chatbot configuration persisted in Redis.

Each entity is one JSON list under ``<CONFIG_KEY_PREFIX><entity>``; rows keep
creation order (ids come from a shared INCR sequence). Writes validate the
payload, enforce uniqueness per (key, deviceId) and run under a distributed
lock so concurrent admins cannot interleave read-modify-write cycles.
"""
import json
import re
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from salesbot.errors import ConflictError, ValidationError
from salesbot.observability.logging import log
from salesbot.settings import settings
from salesbot.store.models import (
    AgentCommandDefinition,
    CommandDefinition,
    CustomFlowDefinition,
    QuickReplyDefinition,
    VariableDefinition,
)
from salesbot.store.redis_conn import get_redis
from salesbot.utils.lock import config_write_lock

COMMANDS = "commands"
QUICK_REPLIES = "quick_replies"
FLOWS = "flows"
VARIABLES = "variables"
AGENT_COMMANDS = "agent_commands"

VALID_FLOWS = ("IBO", "ASSIST", "LAZER", "FUN", "PLAYSIM")
MATCH_TYPES = ("includes", "exact", "starts_with")
AGENT_COMMAND_TYPES = ("test", "reply")

COMMAND_PREFIX = "#"
_TOKEN_RE = re.compile(r"^#[^\s#]+$")
_VARIABLE_NAME_RE = re.compile(r"^[a-z0-9_]+$")


# -----------------
# Normalizers
# -----------------
def normalize_token(token: str) -> str:
    value = (token or "").strip().upper()
    if not value:
        return ""
    if not value.startswith(COMMAND_PREFIX):
        value = COMMAND_PREFIX + value
    return value if _TOKEN_RE.match(value) else ""


def normalize_flow(flow: str) -> str:
    return (flow or "").strip().upper()


def normalize_match_type(match_type: Optional[str]) -> str:
    value = (match_type or "includes").strip().lower()
    return value if value in MATCH_TYPES else "includes"


def normalize_agent_trigger(trigger: str) -> str:
    value = (trigger or "").strip()
    if not value.startswith(COMMAND_PREFIX):
        return ""
    value = re.sub(r"\s+", " ", value)
    if len(value) <= 1:
        return ""
    return value.lower()


def normalize_command_type(command_type: Optional[str]) -> str:
    value = (command_type or "reply").strip().lower()
    return value if value in AGENT_COMMAND_TYPES else ""


def normalize_variable_name(name: str) -> str:
    value = (name or "").strip().lower()
    if not value:
        return ""
    value = re.sub(r"\s+", "_", value)
    return value if _VARIABLE_NAME_RE.match(value) else ""


def _device(payload: Dict[str, Any]) -> Optional[str]:
    d = payload.get("deviceId")
    return str(d).strip() or None if d not in (None, "") else None


def _str_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v or "").strip()]


# -----------------
# Entity rules
# -----------------
def _clean_command(p: Dict[str, Any]) -> Dict[str, Any]:
    token = normalize_token(p.get("token"))
    if not token:
        raise ValidationError("TOKEN_INVALID")
    flow = normalize_flow(p.get("flowName") or p.get("flow"))
    if flow not in VALID_FLOWS:
        raise ValidationError("FLOW_INVALID")
    return {"token": token, "flowName": flow, "enabled": bool(p.get("enabled", True)), "deviceId": _device(p)}


def _clean_quick_reply(p: Dict[str, Any]) -> Dict[str, Any]:
    trigger = (p.get("trigger") or "").strip()
    if not trigger:
        raise ValidationError("TRIGGER_INVALID")
    response = (p.get("responseTemplate") or p.get("response") or "").strip()
    if not response:
        raise ValidationError("RESPONSE_INVALID")
    return {
        "trigger": trigger,
        "responseTemplate": response,
        "matchType": normalize_match_type(p.get("matchType")),
        "enabled": bool(p.get("enabled", True)),
        "deviceId": _device(p),
    }


def _clean_flow(p: Dict[str, Any]) -> Dict[str, Any]:
    name = normalize_flow(p.get("name"))
    if not name:
        raise ValidationError("FLOW_INVALID")
    triggers = [t.lower() for t in _str_list(p.get("triggers"))]
    if not triggers:
        raise ValidationError("TRIGGER_INVALID")
    stages = _str_list(p.get("stages"))
    if not stages:
        raise ValidationError("RESPONSE_INVALID")
    return {"name": name, "triggers": triggers, "stages": stages, "enabled": bool(p.get("enabled", True)), "deviceId": _device(p)}


def _clean_variable(p: Dict[str, Any]) -> Dict[str, Any]:
    name = normalize_variable_name(p.get("name"))
    if not name:
        raise ValidationError("NAME_INVALID")
    value = str(p.get("value") or "").strip()
    if not value:
        raise ValidationError("VALUE_INVALID")
    return {"name": name, "value": value, "deviceId": _device(p)}


def _clean_agent_command(p: Dict[str, Any]) -> Dict[str, Any]:
    trigger = normalize_agent_trigger(p.get("trigger"))
    if not trigger:
        raise ValidationError("TRIGGER_INVALID")
    response = (p.get("responseTemplate") or "").strip()
    if not response:
        raise ValidationError("RESPONSE_INVALID")
    ctype = normalize_command_type(p.get("commandType"))
    if not ctype:
        raise ValidationError("TYPE_INVALID")
    return {
        "trigger": trigger,
        "responseTemplate": response,
        "commandType": ctype,
        "enabled": bool(p.get("enabled", True)),
        "deviceId": _device(p),
    }


@dataclass
class EntityRules:
    model: type
    clean: Callable[[Dict[str, Any]], Dict[str, Any]]
    unique_key: Callable[[Dict[str, Any]], str]
    conflict_code: str


ENTITIES: Dict[str, EntityRules] = {
    COMMANDS: EntityRules(CommandDefinition, _clean_command, lambda r: r["token"], "TOKEN_CONFLICT"),
    QUICK_REPLIES: EntityRules(QuickReplyDefinition, _clean_quick_reply, lambda r: r["trigger"].lower(), "TRIGGER_CONFLICT"),
    FLOWS: EntityRules(CustomFlowDefinition, _clean_flow, lambda r: r["name"], "FLOW_CONFLICT"),
    VARIABLES: EntityRules(VariableDefinition, _clean_variable, lambda r: r["name"], "NAME_CONFLICT"),
    AGENT_COMMANDS: EntityRules(AgentCommandDefinition, _clean_agent_command, lambda r: r["trigger"], "TRIGGER_CONFLICT"),
}


def _rules(entity: str) -> EntityRules:
    rules = ENTITIES.get(entity)
    if rules is None:
        raise ValidationError("ENTITY_INVALID")
    return rules


class ConfigRepository:
    def __init__(self, redis_client=None):
        self._redis = redis_client

    @property
    def r(self):
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def _key(self, entity: str) -> str:
        return f"{settings.CONFIG_KEY_PREFIX}{entity}"

    def _load_rows(self, entity: str) -> List[Dict[str, Any]]:
        raw = self.r.get(self._key(entity))
        if not raw:
            return []
        data = json.loads(raw)
        return data if isinstance(data, list) else []

    def _save_rows(self, entity: str, rows: List[Dict[str, Any]]) -> None:
        self.r.set(self._key(entity), json.dumps(rows, ensure_ascii=False))

    def _to_model(self, entity: str, row: Dict[str, Any]):
        model = _rules(entity).model
        allowed = model.__dataclass_fields__.keys()
        return model(**{k: v for k, v in row.items() if k in allowed})

    def list(self, entity: str) -> list:
        rows = self._load_rows(entity)
        out = []
        for row in rows:
            try:
                out.append(self._to_model(entity, row))
            except TypeError:
                log(event="config_row_skipped", entity=entity, rowId=row.get("id"))
        return out

    def _check_conflict(self, entity: str, rows, cleaned, exclude_id=None) -> None:
        rules = _rules(entity)
        key = rules.unique_key(cleaned)
        for row in rows:
            if row.get("id") == exclude_id:
                continue
            if row.get("deviceId") == cleaned.get("deviceId") and rules.unique_key(row) == key:
                raise ConflictError(rules.conflict_code)

    def create(self, entity: str, payload: Dict[str, Any]):
        rules = _rules(entity)
        cleaned = rules.clean(payload or {})
        with config_write_lock(entity, ttl_ms=settings.CONFIG_WRITE_LOCK_MS, redis_client=self.r):
            rows = self._load_rows(entity)
            self._check_conflict(entity, rows, cleaned)
            cleaned["id"] = int(self.r.incr(f"{settings.CONFIG_KEY_PREFIX}seq"))
            rows.append(cleaned)
            self._save_rows(entity, rows)
        log(event="config_created", entity=entity, rowId=cleaned["id"], deviceId=cleaned.get("deviceId"))
        return self._to_model(entity, cleaned)

    def update(self, entity: str, row_id: int, payload: Dict[str, Any]):
        rules = _rules(entity)
        with config_write_lock(entity, ttl_ms=settings.CONFIG_WRITE_LOCK_MS, redis_client=self.r):
            rows = self._load_rows(entity)
            idx = next((i for i, r in enumerate(rows) if r.get("id") == row_id), None)
            if idx is None:
                return None
            merged = {**rows[idx], **(payload or {})}
            cleaned = rules.clean(merged)
            self._check_conflict(entity, rows, cleaned, exclude_id=row_id)
            cleaned["id"] = row_id
            rows[idx] = cleaned
            self._save_rows(entity, rows)
        log(event="config_updated", entity=entity, rowId=row_id)
        return self._to_model(entity, cleaned)

    def delete(self, entity: str, row_id: int) -> bool:
        _rules(entity)
        with config_write_lock(entity, ttl_ms=settings.CONFIG_WRITE_LOCK_MS, redis_client=self.r):
            rows = self._load_rows(entity)
            kept = [r for r in rows if r.get("id") != row_id]
            if len(kept) == len(rows):
                return False
            self._save_rows(entity, kept)
        log(event="config_deleted", entity=entity, rowId=row_id)
        return True


def model_to_dict(obj) -> Dict[str, Any]:
    return asdict(obj)
