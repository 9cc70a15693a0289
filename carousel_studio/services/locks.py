"""Element lock set: which objects the user has frozen against AI edits.

The editor has stored locks in several shapes over time; all of them are
accepted and mean the same thing:

    {"slide_1": {"title": true}}      {"1": {"title": true}}
    {"slide_1.title": true}           {"1.title": true}
    {"bySlide": {...nested...}}       ["slide_1:title", "1:title"]
"""

from __future__ import annotations

import re
from typing import Any

_SLIDE_ID_RE = re.compile(r"^slide_(\d+)$")


def _truthy_nested(root: Any, slide_key: str, object_id: str) -> bool:
    if not isinstance(root, dict):
        return False
    level = root.get(slide_key)
    if not isinstance(level, dict):
        return False
    return bool(level.get(object_id))


class LockSet:
    """Read-only view over a stored lock payload in any accepted encoding."""

    def __init__(self, raw: Any = None) -> None:
        self.raw = raw if isinstance(raw, (dict, list)) else {}

    def __bool__(self) -> bool:
        return bool(self.raw)

    def is_locked(self, *, object_id: str, slide_id: str | None = None, slide_index: int | None = None) -> bool:
        raw = self.raw
        index_key = str(slide_index) if slide_index is not None else None

        if isinstance(raw, list):
            tokens = {t for t in raw if isinstance(t, str)}
            if slide_id and f"{slide_id}:{object_id}" in tokens:
                return True
            return bool(index_key and f"{index_key}:{object_id}" in tokens)

        for key in (slide_id, index_key):
            if not key:
                continue
            if _truthy_nested(raw, key, object_id):
                return True
            if raw.get(f"{key}.{object_id}"):
                return True
            if _truthy_nested(raw.get("bySlide"), key, object_id):
                return True
        return False

    def locked_keys(self) -> list[str]:
        """Locked targets normalised to ``"<slideIndex>:<objectId>"``, sorted."""
        found: set[str] = set()

        def add(slide_key: str, object_id: str) -> None:
            m = _SLIDE_ID_RE.match(slide_key)
            if m:
                slide_key = m.group(1)
            if slide_key.isdigit() and object_id:
                found.add(f"{int(slide_key)}:{object_id}")

        def add_nested(root: Any) -> None:
            if not isinstance(root, dict):
                return
            for slide_key, objects in root.items():
                if isinstance(objects, dict):
                    for object_id, flag in objects.items():
                        if flag:
                            add(str(slide_key), str(object_id))

        raw = self.raw
        if isinstance(raw, list):
            for token in raw:
                if isinstance(token, str) and ":" in token:
                    slide_key, _, object_id = token.partition(":")
                    add(slide_key, object_id)
            return sorted(found)

        add_nested(raw)
        add_nested(raw.get("bySlide"))
        for key, flag in raw.items():
            if isinstance(key, str) and "." in key and flag and not isinstance(flag, dict):
                slide_key, _, object_id = key.partition(".")
                add(slide_key, object_id)
        return sorted(found)

    def locked_on_slide(self, slide_index: int) -> list[str]:
        prefix = f"{slide_index}:"
        return [k[len(prefix):] for k in self.locked_keys() if k.startswith(prefix)]
