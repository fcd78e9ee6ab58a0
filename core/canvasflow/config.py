"""Shared canvasflow configuration utilities.

Centralises reading of ~/.canvasflow/configuration.json so the CLI, the
provider factory and the scheduler agree on defaults.

Example file:
    {
      "llm": {"model": "gpt-4o", "api_key_env_var": "OPENAI_API_KEY"},
      "engine": {"start_settle_seconds": 0.2}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

CANVASFLOW_CONFIG_FILE = Path(
    os.environ.get("CANVASFLOW_CONFIG", Path.home() / ".canvasflow" / "configuration.json")
)

DEFAULT_MODEL = "gpt-4o"


def get_canvasflow_config() -> dict[str, Any]:
    """Load configuration; a missing or unreadable file means defaults."""
    if not CANVASFLOW_CONFIG_FILE.exists():
        return {}
    try:
        with open(CANVASFLOW_CONFIG_FILE, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Model used when a node or the CLI does not name one."""
    return get_canvasflow_config().get("llm", {}).get("model", DEFAULT_MODEL)


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in configuration."""
    api_key_env_var = get_canvasflow_config().get("llm", {}).get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_api_base() -> str | None:
    return get_canvasflow_config().get("llm", {}).get("api_base")


def _engine_setting(name: str, default: float) -> float:
    return float(get_canvasflow_config().get("engine", {}).get(name, default))


# ---------------------------------------------------------------------------
# Config objects
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Model service settings."""

    model: str = field(default_factory=get_preferred_model)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = field(default_factory=get_api_base)


@dataclass
class EngineConfig:
    """Scheduler timing settings."""

    # Pause before a start node reports success; purely a visual cue.
    start_settle_seconds: float = field(
        default_factory=lambda: _engine_setting("start_settle_seconds", 0.5)
    )
    # How long stop() lets in-flight nodes wind down before giving up on them.
    abort_grace_seconds: float = field(
        default_factory=lambda: _engine_setting("abort_grace_seconds", 1.0)
    )
