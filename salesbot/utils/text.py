import re
import unicodedata


def strip_accents(s: str) -> str:
    decomposed = unicodedata.normalize("NFD", s or "")
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def fold_upper(s: str) -> str:
    return strip_accents(s).upper()


def fold_lower(s: str) -> str:
    return strip_accents(s).lower()


def contains_word(text: str, word: str) -> bool:
    """Case-insensitive whole-word (or whole-phrase) match."""
    if not word:
        return False
    return re.search(rf"\b{re.escape(word)}\b", text or "", re.IGNORECASE) is not None


def contains_any_word(text: str, words) -> bool:
    return any(contains_word(text, w) for w in words)
