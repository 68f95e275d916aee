import json
import os
import tempfile
from dataclasses import asdict
from typing import List

from salesbot.observability.logging import log
from salesbot.store.models import FollowUpRecord


class FollowUpStore:
    """
    JSON document ``{"records": [...]}`` on disk. Every save writes the full
    record set to a temp file in the same directory and renames it over the
    target, so readers see either the old or the new file, never a partial one.
    """

    def __init__(self, path: str):
        self.path = path

    def load(self) -> List[FollowUpRecord]:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return []

        out = []
        allowed = FollowUpRecord.__dataclass_fields__.keys()
        for raw in (data or {}).get("records") or []:
            if not isinstance(raw, dict) or not raw.get("chatId") or not raw.get("createdAt"):
                log(event="follow_up_record_skipped", reason="missing_fields")
                continue
            out.append(FollowUpRecord(**{k: v for k, v in raw.items() if k in allowed}))
        return out

    def save(self, records: List[FollowUpRecord]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=os.path.basename(self.path) + ".", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump({"records": [asdict(r) for r in records]}, fh, ensure_ascii=False, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
