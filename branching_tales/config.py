"""Engine settings stored in {data_dir}/config.json.

load_config() returns defaults merged with stored values. update_config()
applies partial updates, validates the result and persists the full config.
Unknown keys are ignored.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    enable_analytics: bool = True
    enable_tension_mechanics: bool = True
    expected_story_length: int = Field(default=10, ge=1)
    analytics_max_events: int = Field(default=1000, ge=1)


def load_config(path: Path) -> EngineConfig:
    """Read config, returning defaults merged with stored values."""
    if not path.is_file():
        return EngineConfig()
    stored = json.loads(path.read_text())
    known = {k: v for k, v in stored.items() if k in EngineConfig.model_fields}
    return EngineConfig.model_validate({**EngineConfig().model_dump(), **known})


def update_config(path: Path, fields: dict[str, Any]) -> EngineConfig:
    """Merge fields into config and persist. Returns the full config."""
    current = load_config(path).model_dump()
    current.update({k: v for k, v in fields.items() if k in EngineConfig.model_fields})
    config = EngineConfig.model_validate(current)
    path.write_text(config.model_dump_json(indent=2))
    return config
