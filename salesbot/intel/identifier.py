"""
Device identifier (MAC) extraction from recognized text.

OCR output is noisy: separators get dropped or doubled, O reads as 0, I as 1
and so on. The extractor normalizes the text in two passes, scans three regex
shapes, canonicalizes every raw hit to ``AA:BB:CC:DD:EE:FF`` and picks the
best-scoring candidate. Returns None when nothing valid survives.
"""
import re
from typing import List, Optional, Tuple

CANONICAL_RE = re.compile(r"^(?:[0-9A-F]{2}:){5}[0-9A-F]{2}$")

# Label token printed next to the identifier on the app screen
_LABEL_RE = re.compile(r"\bMAC\b\s*[:=\-]?\s*", re.IGNORECASE)
_LABEL_POS_RE = re.compile(r"\bMAC\b", re.IGNORECASE)

# Six 2-char hex groups joined by one separator
_STRICT_RE = re.compile(r"(?<![0-9A-Fa-f])(?:[0-9A-Fa-f]{2}[\s:\-._]){5}[0-9A-Fa-f]{2}")
# Same shape, tolerating up to three stray non-hex characters between groups
_LOOSE_RE = re.compile(r"(?<![0-9A-Fa-f])(?:[0-9A-Fa-f]{2}[^0-9A-Fa-f\n]{1,3}){5}[0-9A-Fa-f]{2}")
# Bare run
_CONTIGUOUS_RE = re.compile(r"(?<![0-9A-Fa-f])[0-9A-Fa-f]{12,14}")


def _overlapping(pattern: "re.Pattern") -> "re.Pattern":
    # "#IB0 AA:BB:..." must not hide the run that starts one group later
    return re.compile(f"(?=({pattern.pattern}))")


_SCAN_ORDER = (_overlapping(_STRICT_RE), _overlapping(_LOOSE_RE), _CONTIGUOUS_RE)

_CONSERVATIVE_MAP = str.maketrans({"O": "0"})
_AGGRESSIVE_MAP = str.maketrans({
    "O": "0",
    "I": "1",
    "l": "1",
    "Z": "2",
    "S": "5",
    "G": "6",
    "T": "7",
})

_MAX_PROXIMITY_BONUS = 5.0


def _blank_label(text: str) -> str:
    # Same-length blanking keeps offsets aligned with the original text.
    return _LABEL_RE.sub(lambda m: " " * len(m.group(0)), text)


def normalize_text(text: str, aggressive: bool = False) -> str:
    table = _AGGRESSIVE_MAP if aggressive else _CONSERVATIVE_MAP
    return _blank_label(text or "").translate(table)


def canonicalize(raw: str) -> Optional[str]:
    hex_only = re.sub(r"[^0-9A-Fa-f]", "", raw or "").upper()
    if len(hex_only) < 12:
        return None
    hex_only = hex_only[:12]
    candidate = ":".join(hex_only[i:i + 2] for i in range(0, 12, 2))
    return candidate if CANONICAL_RE.match(candidate) else None


def _scan(normalized: str) -> List[Tuple[str, int]]:
    found: List[Tuple[str, int]] = []
    for pattern in _SCAN_ORDER:
        for m in pattern.finditer(normalized):
            canon = canonicalize(m.group(m.lastindex or 0))
            if canon:
                found.append((canon, m.start()))
    return found


def _score(candidate: str, pos: int, original_upper: str, label_pos: int) -> float:
    score = 0.0
    if candidate in original_upper:
        score += 1
    if len(candidate) == 17:
        score += 3
    if label_pos >= 0:
        score += max(0.0, _MAX_PROXIMITY_BONUS - abs(pos - label_pos) / 5)
    return score


def find_candidates(text: str) -> List[Tuple[str, int]]:
    """All canonical candidates with their offsets, conservative pass first."""
    found = _scan(normalize_text(text))
    if not found:
        found = _scan(normalize_text(text, aggressive=True))
    return found


def extract_identifier(text: str) -> Optional[str]:
    if not (text or "").strip():
        return None

    candidates = find_candidates(text)
    if not candidates:
        return None

    original_upper = text.upper()
    label_match = _LABEL_POS_RE.search(text)
    label_pos = label_match.start() if label_match else -1

    best, best_score = None, float("-inf")
    for candidate, pos in candidates:
        s = _score(candidate, pos, original_upper, label_pos)
        # strict comparison keeps the first candidate on ties
        if s > best_score:
            best, best_score = candidate, s
    return best
