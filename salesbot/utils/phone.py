import re
from typing import Optional

GROUP_SUFFIX = "@g.us"


def digits_only(raw) -> str:
    return re.sub(r"\D", "", str(raw or ""))


def normalize_to_e164_br(raw) -> Optional[str]:
    """
    Accept 10/11 digits (area code + number) or 12/13 digits already carrying
    the 55 country code. Channel ids such as ``5511999999999@c.us`` work too.
    """
    digits = digits_only(raw)
    if not digits:
        return None
    if digits.startswith("55"):
        if len(digits) in (12, 13):
            return f"+{digits}"
        return None
    if len(digits) in (10, 11):
        return f"+55{digits}"
    return None


def is_group_channel(channel_id: str) -> bool:
    return (channel_id or "").endswith(GROUP_SUFFIX)
