import unittest

from contraband_linter.domain.rules import Severity
from contraband_linter.domain.rules.materialization import (
    OptimizeRemoveRangeRule,
    PrematureMaterializationRule,
    QueryableLeakRule,
    RedundantMaterializationRule,
    ToListInSelectRule,
    UnboundedQueryMaterializationRule,
)
from contraband_linter.domain.syntax import Syntax
from tests.linter_test_utils import DB_SET, ShopModel, fix_all, flagged_text, run_rule


class MaterializationCase(unittest.TestCase):
    def setUp(self) -> None:
        self.shop = ShopModel()
        s = self.shop
        self.list_users = s.method(s.service, "ListUsers", "List<User>", params=(("users", "List<User>"), ("name", "string")))

    def users_param(self) -> Syntax:
        return self.shop.ref(self.shop.param(self.list_users, "users"))

    def named(self) -> Syntax:
        s = self.shop
        name = s.ref(s.param(self.list_users, "name"))
        return s.lam("User", lambda u: s.binary(s.member(u, s.user, "Name"), "==", name), "u")

    def returning(self, expression: Syntax):
        s = self.shop
        return s.build(s.service_unit(s.method_decl(self.list_users, s.ret(expression))))


class TestPrematureMaterializationRule(MaterializationCase):
    def setUp(self) -> None:
        super().setUp()
        self.rule = PrematureMaterializationRule()

    def test_filter_after_to_list_is_flagged(self) -> None:
        """`_db.Users.ToList().Where(...)` filters every row in memory."""
        s = self.shop
        tree = self.returning(s.linq(s.linq(s.linq(s.users(), "ToList"), "Where", self.named()), "ToList"))

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual([d.message_args for d in diagnostics], [("Where",)])

    def test_collection_constructed_from_query_is_flagged(self) -> None:
        s = self.shop
        copied = s.new("List<User>", s.users())
        tree = self.returning(s.linq(s.linq(copied, "Where", self.named()), "ToList"))

        self.assertEqual([d.message_args for d in run_rule(self.rule, tree)], [("Where",)])

    def test_second_materializer_on_a_query_is_redundant(self) -> None:
        s = self.shop
        get_array = s.method(s.service, "AllUsers", "User[]")
        tree = s.build(s.service_unit(s.method_decl(get_array, s.ret(s.linq(s.linq(s.users(), "ToList"), "ToArray")))))

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].message_args, ("ToArray", "ToList"))
        self.assertIn("already materialized", diagnostics[0].message)

    def test_in_memory_source_is_not_flagged(self) -> None:
        s = self.shop
        tree = self.returning(s.linq(s.linq(self.users_param(), "Where", self.named()), "ToList"))

        self.assertEqual(run_rule(self.rule, tree), [])


class TestQueryableLeakRule(unittest.TestCase):
    def setUp(self) -> None:
        self.shop = ShopModel()
        self.rule = QueryableLeakRule()
        s = self.shop
        self.summarize = s.method(s.service, "Summarize", "int", params=(("users", "IEnumerable<User>"),))
        self.report = s.method(s.service, "Report", "int", params=(("cached", "List<User>"),))

    def _tree(self, argument: Syntax):
        s = self.shop
        return s.build(
            s.service_unit(
                s.method_decl(self.summarize, s.ret(s.lit("0"))),
                s.method_decl(self.report, s.ret(s.local_call(self.summarize, argument))),
            )
        )

    def test_query_passed_as_enumerable_is_flagged(self) -> None:
        tree = self._tree(self.shop.users())

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].message_args, ("users", "Summarize"))
        self.assertEqual(diagnostics[0].severity, Severity.INFO)
        self.assertEqual(flagged_text(tree, diagnostics[0]), "_db.Users")

    def test_list_argument_is_not_flagged(self) -> None:
        s = self.shop
        self.assertEqual(run_rule(self.rule, self._tree(s.ref(s.param(self.report, "cached")))), [])


class TestOptimizeRemoveRangeRule(MaterializationCase):
    def setUp(self) -> None:
        super().setUp()
        self.rule = OptimizeRemoveRangeRule()
        self.purge = self.shop.method(self.shop.service, "Purge", params=(("name", "string"),))

    def _tree(self, argument: Syntax):
        s = self.shop
        remove = s.stmt(s.call(s.users(), f"{DB_SET}.RemoveRange", argument))
        return s.build(s.service_unit(s.method_decl(self.purge, remove)))

    def _matching(self) -> Syntax:
        s = self.shop
        name = s.ref(s.param(self.purge, "name"))
        return s.linq(s.users(), "Where", s.lam("User", lambda u: s.binary(s.member(u, s.user, "Name"), "==", name), "u"))

    def test_query_argument_is_flagged(self) -> None:
        self.assertEqual(len(run_rule(self.rule, self._tree(self._matching()))), 1)

    def test_fix_deletes_on_the_server_with_a_warning(self) -> None:
        result = fix_all(self.rule, self._tree(self._matching()))
        source = result.tree.source

        self.assertIn("// Warning: ExecuteDelete bypasses change tracking and cascades.", source)
        self.assertIn("_db.Users.Where(u => u.Name == name).ExecuteDelete();", source)
        self.assertNotIn("RemoveRange", source)

    def test_in_memory_argument_is_not_flagged(self) -> None:
        self.assertEqual(run_rule(self.rule, self._tree(self.users_param())), [])


class TestToListInSelectRule(MaterializationCase):
    def setUp(self) -> None:
        super().setUp()
        self.rule = ToListInSelectRule()

    def _projection(self, source: Syntax) -> Syntax:
        s = self.shop
        nested = s.lam("User", lambda u: s.linq(s.member(u, s.user, "Orders"), "ToList"), "u")
        return s.linq(source, "Select", nested, type="IQueryable<List<Order>>")

    def test_materializer_in_query_projection_is_flagged(self) -> None:
        s = self.shop
        tree = self.returning(s.linq(self._projection(s.users()), "ToList"))

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].message_args, ("ToList",))
        self.assertEqual(flagged_text(tree, diagnostics[0]), "u.Orders.ToList()")

    def test_fix_drops_the_nested_materializer(self) -> None:
        s = self.shop

        result = fix_all(self.rule, self.returning(s.linq(self._projection(s.users()), "ToList")))

        self.assertIn("_db.Users.Select(u => u.Orders).ToList()", result.tree.source)

    def test_in_memory_projection_is_not_flagged(self) -> None:
        s = self.shop
        tree = self.returning(s.linq(self._projection(self.users_param()), "ToList"))

        self.assertEqual(run_rule(self.rule, tree), [])


class TestRedundantMaterializationRule(MaterializationCase):
    def setUp(self) -> None:
        super().setUp()
        self.rule = RedundantMaterializationRule()

    def test_second_copy_of_a_list_is_flagged_and_removed(self) -> None:
        s = self.shop
        tree = self.returning(s.linq(s.linq(self.users_param(), "ToList"), "ToArray"))

        diagnostics = run_rule(self.rule, tree)
        result = fix_all(self.rule, tree)

        self.assertEqual([d.message_args for d in diagnostics], [("ToArray", "ToList")])
        self.assertIn("return users.ToList();", result.tree.source)

    def test_as_enumerable_before_materializer_is_flagged_at_as_enumerable(self) -> None:
        s = self.shop
        tree = self.returning(s.linq(s.linq(self.users_param(), "AsEnumerable"), "ToList"))

        diagnostics = run_rule(self.rule, tree)
        result = fix_all(self.rule, tree)

        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].message_args, ("AsEnumerable", "ToList"))
        self.assertEqual(flagged_text(tree, diagnostics[0]), "users.AsEnumerable()")
        self.assertIn("return users.ToList();", result.tree.source)

    def test_materialized_query_is_left_to_premature_materialization(self) -> None:
        s = self.shop
        tree = self.returning(s.linq(s.linq(s.users(), "ToList"), "ToList"))

        self.assertEqual(run_rule(self.rule, tree), [])


class TestUnboundedQueryMaterializationRule(MaterializationCase):
    def setUp(self) -> None:
        super().setUp()
        self.rule = UnboundedQueryMaterializationRule()

    def test_whole_db_set_materialized_is_flagged(self) -> None:
        s = self.shop
        tree = self.returning(s.linq(s.linq(s.users(), "Where", self.named()), "ToList"))

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual([d.message_args for d in diagnostics], [("Users",)])
        self.assertEqual(diagnostics[0].severity, Severity.INFO)

    def test_bounded_query_is_not_flagged(self) -> None:
        s = self.shop
        tree = self.returning(s.linq(s.linq(s.users(), "Take", s.lit("50")), "ToList"))

        self.assertEqual(run_rule(self.rule, tree), [])

    def test_query_parameter_root_is_not_flagged(self) -> None:
        """Only mapped DbSet members count as unbounded roots."""
        s = self.shop
        page = s.method(s.service, "Page", "List<User>", params=(("query", "IQueryable<User>"),))
        tree = s.build(s.service_unit(s.method_decl(page, s.ret(s.linq(s.ref(s.param(page, "query")), "ToList")))))

        self.assertEqual(run_rule(self.rule, tree), [])


if __name__ == "__main__":
    unittest.main()
