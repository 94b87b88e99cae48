"""Package entry point - composition root. Wire dependencies and run the CLI app."""

from contraband_linter.infrastructure.di.container import ContrabandContainer
from contraband_linter.interface.cli import CLIAppFactory, CLIDependencies


def main() -> None:
    """Entry point: wire dependencies at composition root, create app, run."""
    container = ContrabandContainer()
    deps = CLIDependencies(
        config_loader=container.get_config_loader(),
        registry=container.get_rule_registry(),
        tree_source=container.get_tree_source(),
        rewrite_gateway=container.get_rewrite_gateway(),
        reporters={
            "text": container.get_reporter("text"),
            "json": container.get_reporter("json"),
        },
    )
    app = CLIAppFactory.create_app(deps)
    app()


if __name__ == "__main__":
    main()
