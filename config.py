import logging
import os

import yaml

from settings_schema import SettingsSchema

APP_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


class YamlConfig:
    """Read and write the user-editable settings file.

    Only keys known to :class:`SettingsSchema` are passed through; anything
    else in the file is reported and ignored.
    """

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping of settings")
        known = set(SettingsSchema.model_fields)
        unknown = sorted(str(k) for k in data if k not in known)
        if unknown:
            logger.warning("ignoring unknown settings in %s: %s", self.path, ", ".join(unknown))
        return {k: v for k, v in data.items() if k in known}

    def save(self, data: dict) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(dict(data), f, sort_keys=True, default_flow_style=False)
