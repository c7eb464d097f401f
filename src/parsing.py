"""Extract structured JSON payloads from free-form oracle responses."""

import json
import re

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class ResponseParseError(ValueError):
    """Raised when an oracle response does not contain a usable JSON object."""


def extract_json_object(text: str) -> dict:
    """Return the JSON object embedded in an oracle response.

    Models sometimes wrap the payload in a markdown fence or add a sentence
    before/after it, so the outermost ``{...}`` span is parsed.

    Raises:
        ResponseParseError: No object found, invalid JSON, or top level is
            not an object.
    """
    if not text or not text.strip():
        raise ResponseParseError("Empty response")

    fenced = _FENCE_RE.search(text)
    candidate = fenced.group(1) if fenced else text

    match = _OBJECT_RE.search(candidate)
    if not match:
        raise ResponseParseError("Could not extract JSON object from response")

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Invalid JSON in response: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
