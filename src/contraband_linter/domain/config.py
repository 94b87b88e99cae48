"""Configuration for the linter. Immutable value object created by Infrastructure."""

from __future__ import annotations

import logging

from contraband_linter.domain.rules import Severity
from contraband_linter.domain.rules.lifetime import DEFAULT_SCOPED_HOST_SUFFIXES
from contraband_linter.domain.rules.query_shape import DEFAULT_THEN_INCLUDE_MAX_DEPTH

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4
OUTPUT_FORMATS = ("text", "json")


class ConfigurationLoader:
    """
    Immutable configuration for linter settings.

    Created by Infrastructure from (config_dict, tool_section). Domain does not
    read the filesystem; Infrastructure calls ConfigFileLoader.load_config_from_fs()
    and constructs ConfigurationLoader(config_dict, tool_section) at composition root.
    Invalid values are logged and replaced by their defaults.
    """

    def __init__(
        self,
        config_dict: dict[str, object],
        tool_section: dict[str, object] | None = None,
    ) -> None:
        self._config = config_dict
        self._tool_section = tool_section or {}
        if config_dict:
            self.validate_config(config_dict)

    def validate_config(self, config: dict[str, object]) -> None:
        """Warn about keys this linter does not read."""
        known = {
            "disabled_rules",
            "severity_overrides",
            "max_workers",
            "then_include_max_depth",
            "scoped_host_suffixes",
            "output_format",
        }
        for key in config:
            if key not in known:
                logger.warning("Configuration Warning: unknown key '%s' in [tool.contraband] is ignored.", key)

    @property
    def config(self) -> dict[str, object]:
        """Return the loaded configuration."""
        return self._config

    def get_tool_section(self) -> dict[str, object]:
        """Return the full [tool] section from pyproject.toml."""
        return self._tool_section

    def _get_set(self, key: str) -> set[str]:
        """Helper to safely get a set of strings from config."""
        raw = self._config.get(key, [])
        items: set[str] = set()
        if isinstance(raw, (list, set, tuple)):
            for item in raw:
                if isinstance(item, str):
                    items.add(item)
                else:
                    logger.warning("Configuration Warning: ignoring non-string entry %r in '%s'.", item, key)
        else:
            logger.warning("Configuration Warning: '%s' must be a list of strings.", key)
        return items

    def _positive_int(self, key: str, default: int) -> int:
        raw = self._config.get(key, default)
        if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
            logger.warning("Configuration Warning: '%s' must be a positive integer, using %d.", key, default)
            return default
        return raw

    @property
    def disabled_rules(self) -> set[str]:
        """Rule ids or symbols that must not run."""
        return self._get_set("disabled_rules")

    @property
    def severity_overrides(self) -> dict[str, Severity]:
        """Rule id or symbol -> severity."""
        raw = self._config.get("severity_overrides", {})
        if not isinstance(raw, dict):
            logger.warning("Configuration Warning: 'severity_overrides' must be a table.")
            return {}
        overrides: dict[str, Severity] = {}
        for key, value in raw.items():
            try:
                overrides[str(key)] = Severity.parse(str(value))
            except ValueError:
                logger.warning("Configuration Warning: invalid severity %r for '%s' is ignored.", value, key)
        return overrides

    @property
    def max_workers(self) -> int:
        """Threads used to analyze independent units."""
        return self._positive_int("max_workers", DEFAULT_MAX_WORKERS)

    @property
    def then_include_max_depth(self) -> int:
        return self._positive_int("then_include_max_depth", DEFAULT_THEN_INCLUDE_MAX_DEPTH)

    @property
    def scoped_host_suffixes(self) -> tuple[str, ...]:
        """Class name suffixes whose instances live for one request (LC030 skips them)."""
        if "scoped_host_suffixes" not in self._config:
            return DEFAULT_SCOPED_HOST_SUFFIXES
        return tuple(sorted(self._get_set("scoped_host_suffixes")))

    @property
    def output_format(self) -> str:
        raw = self._config.get("output_format", "text")
        if raw not in OUTPUT_FORMATS:
            logger.warning("Configuration Warning: unknown output_format %r, using 'text'.", raw)
            return "text"
        return str(raw)
