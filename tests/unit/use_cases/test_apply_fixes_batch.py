import unittest
from unittest.mock import MagicMock

from contraband_linter.domain.errors import UnknownRuleError
from contraband_linter.domain.registry import RuleRegistry
from contraband_linter.domain.rules import Diagnostic
from contraband_linter.domain.rules.query_shape import AnyOverCountRule
from contraband_linter.domain.rules.query_translation import StringCaseConversionRule
from contraband_linter.domain.syntax import Syntax
from contraband_linter.domain.tree import Tree
from contraband_linter.infrastructure.gateways.tree_rewrite_gateway import TreeRewriteGateway
from contraband_linter.use_cases.apply_fixes import ApplyFixesUseCase
from tests.conftest import rewrite_gateway_mock
from tests.linter_test_utils import ShopModel


class BrokenFixRule(AnyOverCountRule):
    symbol = "broken-fix"

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list:
        raise RuntimeError("fix exploded")


class TestApplyFixesUseCase(unittest.TestCase):
    def setUp(self) -> None:
        self.shop = ShopModel()
        s = self.shop
        method = s.method(s.service, "Check", "bool")
        first = s.binary(s.linq(s.users(), "Count"), ">", s.lit("0"))
        second = s.binary(s.linq(s.orders(), "Count"), "==", s.lit("0"), "bool")
        third = s.binary(s.linq(s.orders(), "Count"), ">=", s.lit("1"))
        either = s.binary(s.binary(first, "||", s.binary(second, "&&", s.lit("true", "bool"))), "||", third)
        self.tree = s.build(s.service_unit(s.method_decl(method, s.ret(either))))

    def test_every_independent_diagnostic_is_fixed_in_one_pass(self) -> None:
        use_case = ApplyFixesUseCase(RuleRegistry.from_rules([AnyOverCountRule()]), TreeRewriteGateway())

        result = use_case.execute(self.tree, "LC003")

        self.assertEqual(len(result.applied), 2)
        self.assertEqual(result.deferred, ())
        self.assertEqual(result.passes, 1)
        self.assertIn("_db.Users.Any() || _db.Orders.Count() == 0 && true || _db.Orders.Any()", result.tree.source)

    def test_conflicting_diagnostics_are_deferred(self) -> None:
        """Edits are planned against the gateway; a conflicting diagnostic waits for the next pass."""
        gateway = rewrite_gateway_mock(find_conflict=MagicMock(side_effect=[None, ("first", "second")]))
        use_case = ApplyFixesUseCase(RuleRegistry.from_rules([AnyOverCountRule()]), gateway)

        result = use_case.execute(self.tree, "any-over-count")

        self.assertEqual(len(result.applied), 1)
        self.assertEqual(len(result.deferred), 1)
        gateway.apply.assert_called_once()
        edits, tree = gateway.apply.call_args.args
        self.assertEqual(len(edits), 1)
        self.assertIs(tree, self.tree)

    def test_nothing_to_fix_leaves_the_tree_alone(self) -> None:
        gateway = rewrite_gateway_mock()
        use_case = ApplyFixesUseCase(RuleRegistry.from_rules([StringCaseConversionRule()]), gateway)

        result = use_case.execute(self.tree, "LC014")

        self.assertFalse(result.changed)
        self.assertIs(result.tree, self.tree)
        gateway.apply.assert_not_called()

    def test_iterative_mode_stops_at_max_passes(self) -> None:
        """A gateway that never changes the tree would loop forever without the pass limit."""
        gateway = rewrite_gateway_mock()
        use_case = ApplyFixesUseCase(RuleRegistry.from_rules([AnyOverCountRule()]), gateway, max_passes=3)

        result = use_case.execute(self.tree, "LC003", iterative=True)

        self.assertEqual(result.passes, 3)
        self.assertEqual(len(result.applied), 6)
        self.assertEqual(gateway.apply.call_count, 3)

    def test_failing_fix_is_logged_and_skipped(self) -> None:
        use_case = ApplyFixesUseCase(RuleRegistry.from_rules([BrokenFixRule()]), rewrite_gateway_mock())

        with self.assertLogs("contraband_linter.use_cases.apply_fixes", level="WARNING") as captured:
            result = use_case.execute(self.tree, "broken-fix")

        self.assertFalse(result.changed)
        self.assertIn("broken-fix", captured.output[0])

    def test_unknown_rule(self) -> None:
        use_case = ApplyFixesUseCase(RuleRegistry.from_rules([AnyOverCountRule()]), rewrite_gateway_mock())

        with self.assertRaises(UnknownRuleError):
            use_case.execute(self.tree, "LC999")


class TestIterativeStringComparison(unittest.TestCase):
    def test_second_pass_finds_nothing_left(self) -> None:
        s = ShopModel()
        method = s.method(s.service, "Search", "List<User>", params=(("name", "string"),))
        name = s.ref(s.param(method, "name"))

        def lower(value: Syntax) -> Syntax:
            return s.call(value, "string.ToLower")

        predicate = s.lam("User", lambda u: s.binary(lower(s.member(u, s.user, "Name")), "==", lower(name)), "u")
        query = s.linq(s.linq(s.users(), "Where", predicate), "ToList")
        tree = s.build(s.service_unit(s.method_decl(method, s.ret(query))))
        use_case = ApplyFixesUseCase(RuleRegistry.from_rules([StringCaseConversionRule()]), TreeRewriteGateway())

        result = use_case.execute(tree, "string-case-conversion", iterative=True)

        self.assertEqual(result.passes, 2)
        self.assertEqual(len(result.applied), 1)
        self.assertEqual(result.deferred, ())
        self.assertNotIn("ToLower", result.tree.source)
