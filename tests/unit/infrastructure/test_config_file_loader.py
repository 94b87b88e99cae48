import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from contraband_linter.infrastructure.config_file_loader import ConfigFileLoader


class TestConfigFileLoader(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, text: str) -> None:
        (self.root / "pyproject.toml").write_text(text, encoding="utf-8")

    def test_reads_the_contraband_table(self) -> None:
        self._write('[tool.contraband]\ndisabled_rules = ["LC031"]\nmax_workers = 2\n\n[tool.black]\nline-length = 120\n')

        config, tool = ConfigFileLoader.load_config_from_fs(self.root)

        self.assertEqual(config, {"disabled_rules": ["LC031"], "max_workers": 2})
        self.assertEqual(set(tool), {"contraband", "black"})

    def test_finds_the_nearest_pyproject_above_the_start(self) -> None:
        """Running from a subdirectory still picks up the project configuration."""
        self._write('[tool.contraband]\noutput_format = "json"\n')
        nested = self.root / "dumps" / "shop"
        nested.mkdir(parents=True)

        config, _ = ConfigFileLoader.load_config_from_fs(nested)

        self.assertEqual(config, {"output_format": "json"})

    def test_pyproject_without_section(self) -> None:
        self._write('[project]\nname = "shop"\n')

        self.assertEqual(ConfigFileLoader.load_config_from_fs(self.root), ({}, {}))

    def test_invalid_toml_is_logged_and_ignored(self) -> None:
        self._write("[tool.contraband\n")

        with self.assertLogs("contraband_linter.infrastructure.config_file_loader", level="WARNING"):
            result = ConfigFileLoader.load_config_from_fs(self.root)

        self.assertEqual(result, ({}, {}))


if __name__ == "__main__":
    unittest.main()
