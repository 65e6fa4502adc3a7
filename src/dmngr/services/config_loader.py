"""Configuration loader for dmngr."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from dmngr.errors import ConfigError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "kubeconfig",
        "namespace",
        "context_pattern",
        "container",
        "activity_marker",
        "rollout_timeout",
        "poll_interval",
        "max_workers",
        "web_workload",
        "api_workload",
        "verbose",
        "log_file",
    }

    NUMERIC_KEYS = {
        "rollout_timeout": float,
        "poll_interval": float,
        "max_workers": int,
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ConfigError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ConfigError(f"Unknown configuration keys: {unknown_list}")

        for key, cast in self.NUMERIC_KEYS.items():
            if parsed.get(key) is not None:
                parsed[key] = self._coerce_positive(key, parsed[key], cast)

        return parsed

    @staticmethod
    def _coerce_positive(key: str, value: Any, cast) -> Any:
        # bool is an int subclass.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"Configuration key '{key}' must be a number, got {value!r}.")
        if cast is int and not float(value).is_integer():
            raise ConfigError(f"Configuration key '{key}' must be a whole number, got {value!r}.")
        if value <= 0:
            raise ConfigError(f"Configuration key '{key}' must be greater than zero, got {value!r}.")
        return cast(value)
