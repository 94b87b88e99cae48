import unittest

from contraband_linter.domain.rules.ordering import (
    MissingOrderByRule,
    MultipleOrderByRule,
    OrderByAfterPaginationRule,
)
from contraband_linter.domain.syntax import Syntax
from contraband_linter.domain.tree import Tree
from tests.linter_test_utils import ShopModel, fix_all, flagged_text, run_rule


class OrderingCase(unittest.TestCase):
    """Builds `return <query>;` inside UserService.Page()."""

    def setUp(self) -> None:
        self.shop = ShopModel()
        self.page = self.shop.method(self.shop.service, "Page", "List<User>")

    def by(self, name: str) -> Syntax:
        s = self.shop
        return s.lam("User", lambda u: s.member(u, s.user, name), "u")

    def tree(self, query: Syntax) -> Tree:
        s = self.shop
        return s.build(s.service_unit(s.method_decl(self.page, s.ret(query))))


class TestMultipleOrderByRule(OrderingCase):
    def setUp(self) -> None:
        super().setUp()
        self.rule = MultipleOrderByRule()

    def test_second_order_by_is_flagged(self) -> None:
        """The second OrderBy reports at its name, pointing back at the first."""
        s = self.shop
        query = s.linq(s.linq(s.users(), "OrderBy", self.by("Name")), "OrderBy", self.by("Email"))
        tree = self.tree(s.linq(query, "ToList"))

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].message_args, ("OrderBy", "OrderBy", "ThenBy"))
        self.assertEqual(flagged_text(tree, diagnostics[0]), "OrderBy")
        self.assertEqual(len(diagnostics[0].secondary_locations), 1)

    def test_fix_refines_with_then_by(self) -> None:
        s = self.shop
        query = s.linq(s.linq(s.users(), "OrderBy", self.by("Name")), "OrderBy", self.by("Email"))

        result = fix_all(self.rule, self.tree(s.linq(query, "ToList")))

        self.assertIn("_db.Users.OrderBy(u => u.Name).ThenBy(u => u.Email).ToList()", result.tree.source)
        self.assertEqual(run_rule(self.rule, result.tree), [])

    def test_descending_sort_becomes_then_by_descending(self) -> None:
        s = self.shop
        query = s.linq(s.linq(s.users(), "OrderBy", self.by("Name")), "OrderByDescending", self.by("CreatedAt"))

        result = fix_all(self.rule, self.tree(s.linq(query, "ToList")))

        self.assertIn(".ThenByDescending(u => u.CreatedAt)", result.tree.source)

    def test_filter_between_sorts_is_reported_without_fix(self) -> None:
        """After Where the receiver is no longer IOrderedQueryable, so ThenBy would not compile."""
        s = self.shop
        filtered = s.linq(
            s.linq(s.users(), "OrderBy", self.by("Name")),
            "Where",
            s.lam("User", lambda u: s.binary(s.member(u, s.user, "Id"), ">", s.lit("0")), "u"),
        )
        tree = self.tree(s.linq(s.linq(filtered, "OrderBy", self.by("Email")), "ToList"))

        self.assertEqual(len(run_rule(self.rule, tree)), 1)
        self.assertFalse(fix_all(self.rule, tree).changed)

    def test_single_sort_is_not_flagged(self) -> None:
        s = self.shop
        tree = self.tree(s.linq(s.linq(s.users(), "OrderBy", self.by("Name")), "ToList"))

        self.assertEqual(run_rule(self.rule, tree), [])


class TestMissingOrderByRule(OrderingCase):
    def setUp(self) -> None:
        super().setUp()
        self.rule = MissingOrderByRule()

    def test_unordered_paging_flags_skip_and_take(self) -> None:
        s = self.shop
        query = s.linq(s.linq(s.users(), "Skip", s.lit("10")), "Take", s.lit("5"))

        diagnostics = run_rule(self.rule, self.tree(s.linq(query, "ToList")))

        self.assertEqual([d.message_args for d in diagnostics], [("Skip",), ("Take",)])

    def test_ordered_paging_is_not_flagged(self) -> None:
        s = self.shop
        ordered = s.linq(s.users(), "OrderBy", self.by("Id"))
        query = s.linq(s.linq(ordered, "Skip", s.lit("10")), "Take", s.lit("5"))

        self.assertEqual(run_rule(self.rule, self.tree(s.linq(query, "ToList"))), [])

    def test_sort_after_take_reports_misplaced_sort(self) -> None:
        """Take(5).OrderBy(...) sorts the page; only the sort is reported."""
        s = self.shop
        query = s.linq(s.linq(s.users(), "Take", s.lit("5")), "OrderBy", self.by("Name"))
        tree = self.tree(s.linq(query, "ToList"))

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(flagged_text(tree, diagnostics[0]), "OrderBy")
        self.assertIn("after 'Skip' or 'Take'", diagnostics[0].message)


class TestOrderByAfterPaginationRule(OrderingCase):
    def setUp(self) -> None:
        super().setUp()
        self.rule = OrderByAfterPaginationRule()

    def test_sort_after_skip_is_flagged(self) -> None:
        s = self.shop
        query = s.linq(s.linq(s.users(), "Skip", s.lit("5")), "OrderBy", self.by("Name"))

        diagnostics = run_rule(self.rule, self.tree(s.linq(query, "ToList")))

        self.assertEqual([d.message_args for d in diagnostics], [("OrderBy",)])

    def test_sort_before_skip_is_not_flagged(self) -> None:
        s = self.shop
        query = s.linq(s.linq(s.users(), "OrderBy", self.by("Name")), "Skip", s.lit("5"))

        self.assertEqual(run_rule(self.rule, self.tree(s.linq(query, "ToList"))), [])


if __name__ == "__main__":
    unittest.main()
