from typing import Callable

from fastapi import APIRouter, Depends, HTTPException

from salesbot.api.auth import require_admin
from salesbot.api.deps import get_engine, get_resolver
from salesbot.api.schemas import (
    AgentCommandPayload,
    CommandPayload,
    FlowPayload,
    QuickReplyPayload,
    VariablePayload,
    payload_dict,
)
from salesbot.errors import ConflictError, ValidationError
from salesbot.store import config_repo as cr
from salesbot.store.config_repo import model_to_dict
from salesbot.utils.phone import digits_only

router = APIRouter(prefix="/admin", tags=["admin"])


def _run(fn: Callable, *args):
    try:
        return fn(*args)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.code)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=e.code)


def _register_entity(path: str, entity: str, payload_model) -> None:
    """CRUD routes for one config entity: list / create / update / delete."""

    @router.get(f"/{path}", name=f"list_{entity}")
    def list_rows(deviceId: str = None, _=Depends(require_admin), resolver=Depends(get_resolver)):
        return [model_to_dict(r) for r in resolver.list(entity, deviceId)]

    @router.post(f"/{path}", status_code=201, name=f"create_{entity}")
    def create_row(payload: payload_model, _=Depends(require_admin), resolver=Depends(get_resolver)):
        return model_to_dict(_run(resolver.create, entity, payload_dict(payload)))

    @router.put(f"/{path}/{{row_id}}", name=f"update_{entity}")
    def update_row(row_id: int, payload: payload_model, _=Depends(require_admin), resolver=Depends(get_resolver)):
        updated = _run(resolver.update, entity, row_id, payload_dict(payload))
        if updated is None:
            raise HTTPException(status_code=404, detail="NOT_FOUND")
        return model_to_dict(updated)

    @router.delete(f"/{path}/{{row_id}}", name=f"delete_{entity}")
    def delete_row(row_id: int, _=Depends(require_admin), resolver=Depends(get_resolver)):
        if not _run(resolver.delete, entity, row_id):
            raise HTTPException(status_code=404, detail="NOT_FOUND")
        return {"deleted": True, "id": row_id}


_register_entity("commands", cr.COMMANDS, CommandPayload)
_register_entity("quick-replies", cr.QUICK_REPLIES, QuickReplyPayload)
_register_entity("flows", cr.FLOWS, FlowPayload)
_register_entity("variables", cr.VARIABLES, VariablePayload)
_register_entity("agent-commands", cr.AGENT_COMMANDS, AgentCommandPayload)


@router.get("/follow-ups")
def list_follow_ups(_=Depends(require_admin), engine=Depends(get_engine)):
    """Pending follow-up reminders, oldest first."""
    rows = sorted(engine.follow_ups.records(), key=lambda r: r.createdAt)
    return [model_to_dict(r) for r in rows]


@router.get("/state/{device_id}/{phone}")
def get_state(device_id: str, phone: str, _=Depends(require_admin), engine=Depends(get_engine)):
    key = (device_id, digits_only(phone))
    return {"deviceId": device_id, "phone": key[1], "state": engine.store.snapshot(key)}
