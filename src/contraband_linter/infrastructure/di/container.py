from typing import TYPE_CHECKING, Any, cast

from contraband_linter.domain.config import ConfigurationLoader
from contraband_linter.domain.registry import RuleRegistry
from contraband_linter.infrastructure.config_file_loader import ConfigFileLoader
from contraband_linter.infrastructure.gateways.tree_dump_gateway import TreeDumpGateway
from contraband_linter.infrastructure.gateways.tree_rewrite_gateway import TreeRewriteGateway
from contraband_linter.infrastructure.reporters import JsonReporter, TerminalReporter

if TYPE_CHECKING:
    from contraband_linter.domain.protocols import (
        ReporterProtocol,
        RewriteGatewayProtocol,
        TreeSourceProtocol,
    )


class ContrabandContainer:
    """Dependency Injection Container for the Contraband linter."""

    def __init__(self, config_loader: ConfigurationLoader | None = None) -> None:
        self._singletons: dict[str, Any] = {}
        self._register_defaults(config_loader)

    def _register_defaults(self, config_loader: ConfigurationLoader | None) -> None:
        """Register default implementations for protocols."""
        if config_loader is None:
            config_dict, tool_section = ConfigFileLoader.load_config_from_fs()
            config_loader = ConfigurationLoader(config_dict, tool_section)
        self.register_singleton("ConfigurationLoader", config_loader)
        self.register_singleton("RuleRegistry", RuleRegistry.default(config_loader))
        self.register_singleton("TreeDumpGateway", TreeDumpGateway())
        self.register_singleton("TreeRewriteGateway", TreeRewriteGateway())
        self.register_singleton("TerminalReporter", TerminalReporter())
        self.register_singleton("JsonReporter", JsonReporter())

    def register_singleton(self, key: str, instance: Any) -> None:
        self._singletons[key] = instance

    # JUSTIFICATION: DI Container must return any type of service
    def get(self, key: str) -> Any:
        if key in self._singletons:
            return self._singletons[key]
        raise ValueError(f"Dependency '{key}' not registered.")

    def get_config_loader(self) -> ConfigurationLoader:
        return cast(ConfigurationLoader, self.get("ConfigurationLoader"))

    def get_rule_registry(self) -> RuleRegistry:
        return cast(RuleRegistry, self.get("RuleRegistry"))

    def get_tree_source(self) -> "TreeSourceProtocol":
        return cast("TreeSourceProtocol", self.get("TreeDumpGateway"))

    def get_rewrite_gateway(self) -> "RewriteGatewayProtocol":
        return cast("RewriteGatewayProtocol", self.get("TreeRewriteGateway"))

    def get_reporter(self, output_format: str | None = None) -> "ReporterProtocol":
        """Reporter for output_format, defaulting to the configured one."""
        chosen = output_format or self.get_config_loader().output_format
        key = "JsonReporter" if chosen == "json" else "TerminalReporter"
        return cast("ReporterProtocol", self.get(key))
