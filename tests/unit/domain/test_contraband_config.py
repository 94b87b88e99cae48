import unittest

from contraband_linter.domain.config import DEFAULT_MAX_WORKERS, ConfigurationLoader
from contraband_linter.domain.rules import Severity
from contraband_linter.domain.rules.lifetime import DEFAULT_SCOPED_HOST_SUFFIXES
from contraband_linter.domain.rules.query_shape import DEFAULT_THEN_INCLUDE_MAX_DEPTH

LOGGER = "contraband_linter.domain.config"


class TestConfigurationLoader(unittest.TestCase):
    def test_defaults_when_nothing_is_configured(self) -> None:
        loader = ConfigurationLoader({})

        self.assertEqual(loader.disabled_rules, set())
        self.assertEqual(loader.severity_overrides, {})
        self.assertEqual(loader.max_workers, DEFAULT_MAX_WORKERS)
        self.assertEqual(loader.then_include_max_depth, DEFAULT_THEN_INCLUDE_MAX_DEPTH)
        self.assertEqual(loader.scoped_host_suffixes, DEFAULT_SCOPED_HOST_SUFFIXES)
        self.assertEqual(loader.output_format, "text")
        self.assertEqual(loader.get_tool_section(), {})

    def test_configured_values(self) -> None:
        loader = ConfigurationLoader(
            {
                "disabled_rules": ["LC031", "sync-blocker"],
                "severity_overrides": {"LC003": "Warning", "LC012": "error"},
                "max_workers": 8,
                "output_format": "json",
            },
            {"contraband": {}},
        )

        self.assertEqual(loader.disabled_rules, {"LC031", "sync-blocker"})
        self.assertEqual(loader.severity_overrides, {"LC003": Severity.WARN, "LC012": Severity.ERROR})
        self.assertEqual(loader.max_workers, 8)
        self.assertEqual(loader.output_format, "json")
        self.assertEqual(loader.get_tool_section(), {"contraband": {}})

    def test_unknown_key_is_reported(self) -> None:
        with self.assertLogs(LOGGER, level="WARNING") as captured:
            ConfigurationLoader({"layers": []})

        self.assertIn("unknown key 'layers'", captured.output[0])

    def test_invalid_values_fall_back_to_defaults(self) -> None:
        """Bad values are logged and replaced rather than raised."""
        loader = ConfigurationLoader(
            {
                "max_workers": 0,
                "then_include_max_depth": True,
                "output_format": "xml",
                "severity_overrides": {"LC003": "fatal"},
                "disabled_rules": "LC003",
            }
        )

        with self.assertLogs(LOGGER, level="WARNING") as captured:
            self.assertEqual(loader.max_workers, DEFAULT_MAX_WORKERS)
            self.assertEqual(loader.then_include_max_depth, DEFAULT_THEN_INCLUDE_MAX_DEPTH)
            self.assertEqual(loader.output_format, "text")
            self.assertEqual(loader.severity_overrides, {})
            self.assertEqual(loader.disabled_rules, set())

        self.assertEqual(len(captured.output), 5)

    def test_non_string_entries_are_skipped(self) -> None:
        loader = ConfigurationLoader({"scoped_host_suffixes": ["Handler", 3, "Controller"]})

        with self.assertLogs(LOGGER, level="WARNING"):
            suffixes = loader.scoped_host_suffixes

        self.assertEqual(suffixes, ("Controller", "Handler"))


if __name__ == "__main__":
    unittest.main()
