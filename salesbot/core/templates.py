import re
from typing import Dict, Optional

_BUILTIN_RE = re.compile(r"\{#(nome|telefone)\}", re.IGNORECASE)
_CUSTOM_RE = re.compile(r"\{#([a-z0-9_]+)\}", re.IGNORECASE)
_TRIAL_RE = re.compile(r"\{#(usuario|senha|http1|http2)\}", re.IGNORECASE)


def render_template(template: str, name: str = "", phone: str = "", variables: Optional[Dict[str, str]] = None) -> str:
    """
    ``{#nome}``/``{#telefone}`` plus operator variables. A variable named like a
    builtin overrides it; unknown placeholders stay as written.
    """
    if not template:
        return template or ""
    variables = variables or {}

    def _builtin(m):
        key = m.group(1).lower()
        if key in variables:
            return variables[key] or ""
        return ((name if key == "nome" else phone) or "").strip()

    out = _BUILTIN_RE.sub(_builtin, template)
    return _CUSTOM_RE.sub(lambda m: variables.get(m.group(1).lower(), m.group(0)) or "", out)


def render_trial_template(template: str, name: str, phone: str, trial_vars: Dict[str, str],
                          variables: Optional[Dict[str, str]] = None) -> str:
    """Agent command templates additionally get usuario/senha/http1/http2."""
    out = _TRIAL_RE.sub(lambda m: (trial_vars.get(m.group(1).lower()) or "").strip(), template or "")
    return render_template(out, name=name, phone=phone, variables=variables)
