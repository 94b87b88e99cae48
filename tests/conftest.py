"""Pytest configuration.

Run pytest from the project root; pythonpath in pyproject.toml puts src/ and
the root on sys.path so tests import `contraband_linter` and
`tests.linter_test_utils` without installing the package.
"""

from unittest.mock import MagicMock

import pytest

from tests.linter_test_utils import ShopModel


@pytest.fixture
def shop() -> ShopModel:
    """A fresh model per test; builders mutate their symbol set."""
    return ShopModel()


def rewrite_gateway_mock(**overrides: object) -> MagicMock:
    """A rewrite gateway that reports no conflicts and returns the tree unchanged."""
    gateway = MagicMock()
    gateway.find_conflict.return_value = None
    gateway.apply.side_effect = lambda edits, tree: tree
    for name, value in overrides.items():
        setattr(gateway, name, value)
    return gateway
