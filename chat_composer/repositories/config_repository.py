from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from chat_composer.constants import COMPOSER_CONFIG_FILE
from chat_composer.models import ComposerConfig

logger = logging.getLogger(__name__)


class ConfigRepository:
    def __init__(self, path: str | Path = COMPOSER_CONFIG_FILE):
        self.path = Path(path)

    def load_raw(self) -> dict[str, Any]:
        if os.path.exists(self.path):
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        return data
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Failed to load config from %s: %s", self.path, exc)
        return {}

    def load_config(self) -> ComposerConfig:
        data = {
            key: value
            for key, value in self.load_raw().items()
            if key in ComposerConfig.model_fields
        }
        try:
            return ComposerConfig.model_validate(data)
        except ValidationError as exc:
            invalid = {str(err["loc"][0]) for err in exc.errors() if err["loc"]}
            logger.warning(
                "Ignoring invalid config values in %s: %s",
                self.path,
                ", ".join(sorted(invalid)),
            )
            valid = {key: value for key, value in data.items() if key not in invalid}
            return ComposerConfig.model_validate(valid)

    def save_config(self, config: ComposerConfig) -> None:
        try:
            os.makedirs(self.path.parent, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(config.model_dump(), f, indent=2)
        except OSError as exc:
            logger.warning("Failed saving config to %s: %s", self.path, exc)
