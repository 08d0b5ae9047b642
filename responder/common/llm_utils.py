"""Helpers for reading structured output from LLM responses."""

from __future__ import annotations

import json
from typing import Iterator


def _candidates(raw: str) -> Iterator[str]:
    text = raw.strip()
    if text.startswith("```"):
        text = "\n".join(line for line in text.split("\n") if not line.strip().startswith("```"))
    yield text

    start, end = raw.find("{"), raw.rfind("}")
    if 0 <= start < end:
        yield raw[start:end + 1]


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM response.

    Accepts a bare object, one wrapped in markdown code fences, or one
    embedded in surrounding chatter (first '{' to last '}'). Anything that
    does not yield a JSON object (lists, strings, broken JSON) gives {}.
    """
    if not raw:
        return {}

    for candidate in _candidates(raw):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return {}
