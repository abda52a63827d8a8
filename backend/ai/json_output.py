import re

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def extract_json_object(text: str) -> str:
    """Return the outermost {...} span of a model reply, code fences removed."""
    cleaned = _FENCE_RE.sub("", text or "").strip()
    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first == -1 or last == -1 or last <= first:
        raise ValueError("Model output did not include a JSON object")
    return cleaned[first:last + 1]
