"""
Operator-defined agent commands.

``reply`` commands render their template and send it to the contact.
``test`` commands request a trial for the app named by the trigger, pull
credentials and links out of the upstream reply and render them into the
template (``{#usuario}``, ``{#senha}``, ``{#http1}``, ``{#http2}``).
"""
from salesbot.core import phrases as ph
from salesbot.core.templates import render_template, render_trial_template
from salesbot.intel.text_blocks import (
    credentials_from_links,
    extract_credentials,
    extract_links,
    prioritize_links,
)
from salesbot.observability.logging import log
from salesbot.settings import settings
from salesbot.store.models import AgentCommandDefinition

TYPE_TEST = "test"


def _short_link_hosts():
    return [h.strip() for h in (settings.SHORT_LINK_HOSTS or "").split(",") if h.strip()]


def app_name_from_trigger(trigger: str) -> str:
    return (trigger or "").lstrip("#").strip()


def run_agent_command(flow, turn, cmd: AgentCommandDefinition) -> None:
    variables = flow.resolver.variables_map(turn.device_id)
    phone = turn.phone_e164 or turn.phone
    log(event="agent_command", deviceId=turn.device_id, trigger=cmd.trigger, commandType=cmd.commandType)

    if cmd.commandType != TYPE_TEST:
        flow.reply(turn, render_template(cmd.responseTemplate, name=turn.name, phone=phone, variables=variables))
        flow.audit(turn, "agent_command", trigger=cmd.trigger)
        return

    app_name = app_name_from_trigger(cmd.trigger)
    reply_text = flow.provision(turn, app_name, app_name)
    if reply_text is None:
        flow.reply(turn, ph.MSG_FALLBACK)
        return
    if flow.handle_limit(turn, reply_text):
        return

    links = prioritize_links(extract_links(reply_text), _short_link_hosts())
    creds = extract_credentials(reply_text)
    if not (creds.username and creds.password):
        from_links = credentials_from_links(links)
        creds.username = creds.username or from_links.username
        creds.password = creds.password or from_links.password

    trial_vars = {
        "usuario": creds.username or "",
        "senha": creds.password or "",
        "http1": links[0] if len(links) > 0 else "",
        "http2": links[1] if len(links) > 1 else "",
    }
    message = render_trial_template(cmd.responseTemplate, turn.name, phone, trial_vars, variables)
    flow.reply(turn, message)
    flow.audit(turn, "trial_generated", trigger=cmd.trigger, app=app_name)
    flow.schedule_follow_up(turn)
