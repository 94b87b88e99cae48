"""Load [tool.contraband] and [tool] from pyproject.toml. Infrastructure I/O only."""

import logging
import sys
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib as toml_lib
else:
    import tomli as toml_lib

logger = logging.getLogger(__name__)

TOOL_KEY = "contraband"


class ConfigFileLoader:
    """
    Loads config from the nearest pyproject.toml at or above the working directory.
    """

    @staticmethod
    def load_config_from_fs(start: Path | None = None) -> tuple[dict[str, object], dict[str, object]]:
        """Load [tool.contraband] and [tool] from pyproject.toml. Returns (config_dict, tool_section)."""
        current_path = (start or Path.cwd()).resolve()
        empty: dict[str, object] = {}
        for directory in (current_path, *current_path.parents):
            config_file = directory / "pyproject.toml"
            if not config_file.exists():
                continue
            try:
                with config_file.open("rb") as f:
                    data = toml_lib.load(f)
            except (OSError, toml_lib.TOMLDecodeError) as exc:
                logger.warning("Ignoring unreadable %s: %s", config_file, exc)
                return (empty, empty)
            tool_section = data.get("tool", {}) or {}
            config_dict = tool_section.get(TOOL_KEY, {}) or {}
            logger.debug("Loaded configuration from %s", config_file)
            return (config_dict, tool_section)
        return (empty, empty)
