from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

_SNAKE_RE = re.compile(r"^[a-z][a-z0-9]*(_[a-z0-9]+)+$")


class CamelModel(BaseModel):
    """Snake-case in Python, camelCase on the wire; both accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def camelize_keys(value: Any) -> Any:
    """Recursively rename snake_case dict keys to camelCase; other keys are kept."""
    if isinstance(value, dict):
        return {
            (to_camel(k) if isinstance(k, str) and _SNAKE_RE.match(k) else k): camelize_keys(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [camelize_keys(v) for v in value]
    return value
