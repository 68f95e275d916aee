import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple
from urllib.parse import parse_qsl, unquote, urlparse

from salesbot.utils.text import fold_lower, strip_accents

BLOCK_TERMINATOR = "***"
LIMIT_MARKER = "ja solicitou"

USER_PARAM_KEYS = ("username", "user", "login", "name")
PASS_PARAM_KEYS = ("password", "pass", "senha")

_CODE_RE = re.compile(r"\bcod(?:igo|e)?\b\s*[:=\-]?\s*([^\s]+)", re.IGNORECASE)
_USER_RE = re.compile(
    r"\b(?:usuario|username|user|login)\b\s*[:=\-]?\s*(.+?)(?=\s+(?:senha|password|pass)\b|$)",
    re.IGNORECASE,
)
_PASS_RE = re.compile(r"\b(?:senha|password|pass)\b\s*[:=\-]?\s*(.+)", re.IGNORECASE)
# key=value&key2=value2, optionally behind a URL or a '?'
_QUERY_RE = re.compile(r"(?:^|[?\s])([A-Za-z_]+=[^\s&]*(?:&[A-Za-z_]+=[^\s&]*)+)")

LINK_RE = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)
PLAYLIST_URL_RE = re.compile(r"https?://[^\s]+/get\.php\?[^\s]+", re.IGNORECASE)
_PLAYLIST_PATH_USER_RE = re.compile(r"/([A-Za-z0-9._-]{3,})/[A-Za-z0-9._-]{3,}/?$")

_LEADING_MARKUP_RE = re.compile(r"^[*•\-\s]+")
_LEADING_PUNCT_RE = re.compile(r"^[=:.\-]\s*")


@dataclass
class Credentials:
    username: Optional[str] = None
    password: Optional[str] = None
    code: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.username or self.password or self.code)


def _dedupe_preserve(seq: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for x in seq:
        if x not in seen:
            seen.add(x)
            out.append(x)
    return out


def _keyword_re(keyword: str) -> "re.Pattern":
    return re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)


def filter_block(text: str, keyword: str) -> Optional[str]:
    """
    Return the paragraph of ``text`` that belongs to ``keyword``.

    Blocks open on a line mentioning the keyword and close on a line ending
    with ``***`` (or at the next keyword line / end of input). When the
    keyword recurs, a block that mentions it more than once beats the first
    block collected.
    """
    if not text or not keyword:
        return None

    kw_re = _keyword_re(keyword)
    blocks: List[List[str]] = []
    current: List[str] = []
    found = False

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if kw_re.search(line):
            found = True
            if current:
                blocks.append(current)
                current = []
        if found:
            current.append(line)
            if line.endswith(BLOCK_TERMINATOR):
                blocks.append(current)
                current = []

    if current:
        blocks.append(current)
    if not blocks:
        return None

    joined = ["\n".join(b) for b in blocks]
    counts = [len(kw_re.findall(b)) for b in joined]
    for block, n in zip(joined, counts):
        if n >= 2:
            return block
    for block, n in zip(joined, counts):
        if n >= 1:
            return block
    return joined[0]


def sanitize_credential_value(value: str) -> str:
    cleaned = (value or "").strip()
    cleaned = _LEADING_MARKUP_RE.sub("", cleaned)
    cleaned = _LEADING_PUNCT_RE.sub("", cleaned)
    return cleaned.strip()


def _pick_param(pairs: Sequence[Tuple[str, str]], keys: Sequence[str]) -> Optional[str]:
    first = {}
    for k, v in pairs:
        first.setdefault(k.lower(), v)
    for key in keys:
        value = sanitize_credential_value(first.get(key) or "")
        if value:
            return value
    return None


def _query_credentials(line: str) -> Tuple[Optional[str], Optional[str]]:
    m = _QUERY_RE.search(line)
    if not m:
        return None, None
    pairs = parse_qsl(m.group(1), keep_blank_values=True)
    return _pick_param(pairs, USER_PARAM_KEYS), _pick_param(pairs, PASS_PARAM_KEYS)


def _clean_line(line: str) -> str:
    return strip_accents(re.sub(r"[*_]", "", line)).strip()


def extract_credentials(block: str) -> Credentials:
    """
    Labeled fields win; a bare query string (``username=..&password=..``)
    fills whatever the labels did not provide. First match per field wins.
    """
    creds = Credentials()
    q_user = q_pass = None

    for raw_line in (block or "").splitlines():
        line = _clean_line(raw_line)
        if not line:
            continue
        line = _LEADING_MARKUP_RE.sub("", line)

        u, p = _query_credentials(line)
        if u or p:
            q_user = q_user or u
            q_pass = q_pass or p
            continue

        if not creds.code:
            m = _CODE_RE.search(line)
            if m:
                creds.code = sanitize_credential_value(m.group(1)) or None
        if not creds.username:
            m = _USER_RE.search(line)
            if m:
                creds.username = sanitize_credential_value(m.group(1)) or None
        if not creds.password:
            m = _PASS_RE.search(line)
            if m:
                creds.password = sanitize_credential_value(m.group(1)) or None

    creds.username = creds.username or q_user
    creds.password = creds.password or q_pass
    return creds


def _strip_trailing_punct(u: str) -> str:
    return (u or "").rstrip(").,;!?'\"]}")


def extract_links(text: str) -> List[str]:
    return _dedupe_preserve(_strip_trailing_punct(m) for m in LINK_RE.findall(text or ""))


def _host_allowed(link: str, hosts: Sequence[str]) -> bool:
    host = (urlparse(link).hostname or "").lower()
    if not host:
        return False
    return any(host == h or host.endswith("." + h) for h in hosts)


def prioritize_links(links: Sequence[str], short_hosts: Sequence[str]) -> List[str]:
    """Stable reorder: links on allow-listed short-link hosts first."""
    hosts = [h.strip().lower() for h in short_hosts if h and h.strip()]
    if not hosts:
        return list(links)
    preferred = [l for l in links if _host_allowed(l, hosts)]
    rest = [l for l in links if not _host_allowed(l, hosts)]
    return preferred + rest


def credentials_from_links(links: Sequence[str]) -> Credentials:
    creds = Credentials()
    for link in links:
        pairs = parse_qsl(urlparse(link).query, keep_blank_values=True)
        creds.username = creds.username or _pick_param(pairs, USER_PARAM_KEYS)
        creds.password = creds.password or _pick_param(pairs, PASS_PARAM_KEYS)
        if creds.username and creds.password:
            break
    return creds


def extract_playlist_url(text: str) -> Optional[str]:
    m = PLAYLIST_URL_RE.search(text or "")
    return _strip_trailing_punct(m.group(0)) if m else None


def username_from_playlist_url(url: str) -> Optional[str]:
    if not url:
        return None
    m = re.search(r"username=([^&\s]+)", url, re.IGNORECASE)
    if m:
        return unquote(m.group(1))
    m = _PLAYLIST_PATH_USER_RE.search(urlparse(url).path)
    return m.group(1) if m else None


def detect_limit_reached(text: str) -> bool:
    return LIMIT_MARKER in fold_lower(text)


def strip_tokens(block: str, keyword: str, tokens: Sequence[str]) -> str:
    """Remove the product keyword and any command token from a block."""
    out = re.sub(re.escape(keyword), "", block or "", flags=re.IGNORECASE) if keyword else (block or "")
    toks = [t for t in tokens if t]
    if toks:
        out = re.sub("|".join(re.escape(t) for t in toks), "", out, flags=re.IGNORECASE)
    return out.strip()
