from dataclasses import dataclass
from typing import Dict, Optional

from salesbot.store.models import CommandDefinition

FLOW_IBO = "IBO"
FLOW_ASSIST = "ASSIST"
FLOW_LAZER = "LAZER"
FLOW_FUN = "FUN"
FLOW_PLAYSIM = "PLAYSIM"

KEYWORD_ASSIST = "ASSIST PLUS"
KEYWORD_LAZER = "LAZER PLAY"


@dataclass(frozen=True)
class ProductProfile:
    key: str
    keyword: str
    app_name: str
    display_name: str
    default_code: Optional[str] = None
    fallback_full_text: bool = False


APP_PROFILES: Dict[str, ProductProfile] = {
    FLOW_ASSIST: ProductProfile(FLOW_ASSIST, KEYWORD_ASSIST, "assist", "ASSIST PLUS", "centertv", True),
    FLOW_LAZER: ProductProfile(FLOW_LAZER, KEYWORD_LAZER, "lazer play", "LAZER PLAY", "br99"),
    # FUN PLAY shares the LAZER PLAY paragraph of the upstream response
    FLOW_FUN: ProductProfile(FLOW_FUN, KEYWORD_LAZER, "lazer play", "FUN PLAY", "br99"),
    FLOW_PLAYSIM: ProductProfile(FLOW_PLAYSIM, KEYWORD_ASSIST, "playsim", "PLAYSIM", "centertv", True),
}

# Upstream app names for identifier-based provisioning
IBO_APP_NAME = "ibo revenda"
CELULAR_APP_NAME = "celular"


def identifier_label(app_name: str, identifier: str) -> str:
    return f"{app_name} - MAC {identifier}"


# Used whenever the config store holds no command rows
DEFAULT_COMMANDS = [
    CommandDefinition(id=i + 1, token=f"#{flow}", flowName=flow, enabled=True, deviceId=None)
    for i, flow in enumerate((FLOW_IBO, FLOW_ASSIST, FLOW_LAZER, FLOW_FUN, FLOW_PLAYSIM))
]
