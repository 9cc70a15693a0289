"""Pull the first balanced JSON value out of free model text."""

from __future__ import annotations


def extract_first_json(text: str) -> str | None:
    """Return the first balanced ``{...}`` or ``[...]`` span in ``text``.

    Model replies may wrap the payload in prose or Markdown fences. Brackets
    inside string literals (including escaped quotes) are ignored. Returns
    ``None`` when no complete value is found.
    """
    trimmed = text.strip()
    if not trimmed:
        return None

    first_brace = trimmed.find("{")
    first_bracket = trimmed.find("[")
    if first_brace == -1 and first_bracket == -1:
        return None

    if first_brace != -1 and (first_bracket == -1 or first_brace < first_bracket):
        start, open_ch, close_ch = first_brace, "{", "}"
    else:
        start, open_ch, close_ch = first_bracket, "[", "]"

    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(trimmed)):
        ch = trimmed[i]

        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
            continue

        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1

        if depth == 0:
            return trimmed[start:i + 1]

    return None
