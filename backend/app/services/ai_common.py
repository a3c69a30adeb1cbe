import json
import math


_decoder = json.JSONDecoder()


def extract_first_json_object(text: str) -> dict:
    """
    Best-effort extraction of the first JSON object from a model response.
    Handles cases where the model wraps JSON in prose or markdown fences.
    """
    raw = (text or "").strip()
    if not raw:
        raise ValueError("Empty AI response")

    # Fast path: pure JSON
    try:
        obj = json.loads(raw)
        if isinstance(obj, dict):
            return obj
    except json.JSONDecodeError:
        pass

    # Decode from each "{" until one yields a complete object.
    pos = raw.find("{")
    if pos < 0:
        raise ValueError("No JSON object found in AI response")
    while pos >= 0:
        try:
            obj, _ = _decoder.raw_decode(raw, pos)
        except json.JSONDecodeError:
            pos = raw.find("{", pos + 1)
            continue
        if isinstance(obj, dict):
            return obj
        pos = raw.find("{", pos + 1)
    raise ValueError("No JSON object found in AI response")


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))
