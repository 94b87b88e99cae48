import unittest

from contraband_linter.domain.rules.tracking import (
    AsNoTrackingWithUpdateRule,
    IgnoreQueryFiltersRule,
    MissingAsNoTrackingRule,
)
from contraband_linter.domain.syntax import Syntax
from tests.linter_test_utils import DB_CONTEXT, DB_SET, ShopModel, fix_all, flagged_text, run_rule


class TestMissingAsNoTrackingRule(unittest.TestCase):
    def setUp(self) -> None:
        self.shop = ShopModel()
        self.rule = MissingAsNoTrackingRule()
        self.get_all = self.shop.method(self.shop.service, "GetAll", "List<User>")

    def _returning(self, query: Syntax, *before: Syntax):
        s = self.shop
        return s.build(s.service_unit(s.method_decl(self.get_all, *before, s.ret(query))))

    def test_tracked_query_in_read_only_method_is_flagged(self) -> None:
        s = self.shop
        tree = self._returning(s.linq(s.users(), "ToList"))

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].message_args, ("GetAll",))
        self.assertEqual(flagged_text(tree, diagnostics[0]), "_db.Users.ToList()")

    def test_no_tracking_projection_or_save_suppresses(self) -> None:
        """AsNoTracking, a Select projection, or a SaveChanges in the method."""
        s = self.shop
        no_tracking = self._returning(s.linq(s.linq(s.users(), "AsNoTracking"), "ToList"))
        projected = self._returning(
            s.linq(s.linq(s.users(), "Select", s.lam("User", lambda u: u, "u"), type="IQueryable<User>"), "ToList")
        )
        saving = self._returning(s.linq(s.users(), "ToList"), s.stmt(s.call(s.db(), f"{DB_CONTEXT}.SaveChanges")))

        for tree in (no_tracking, projected, saving):
            self.assertEqual(run_rule(self.rule, tree), [])

    def test_expression_bodied_method_is_flagged(self) -> None:
        s = self.shop
        tree = s.build(s.service_unit(s.method_decl(self.get_all, expression=s.linq(s.users(), "ToList"))))

        self.assertEqual(len(run_rule(self.rule, tree)), 1)

    def test_awaited_async_materializer_is_flagged(self) -> None:
        s = self.shop
        get_all = s.method(s.service, "GetAllAsync", "Task<List<User>>", is_async=True)
        tree = s.build(s.service_unit(s.method_decl(get_all, s.ret(s.await_(s.linq(s.users(), "ToListAsync"))))))

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual([d.message_args for d in diagnostics], [("GetAllAsync",)])


class TestIgnoreQueryFiltersRule(unittest.TestCase):
    def setUp(self) -> None:
        self.shop = ShopModel()
        self.rule = IgnoreQueryFiltersRule()
        s = self.shop
        get_all = s.method(s.service, "GetEveryone", "List<User>")
        query = s.linq(s.linq(s.users(), "IgnoreQueryFilters"), "ToList")
        self.tree = s.build(s.service_unit(s.method_decl(get_all, s.ret(query))))

    def test_ignore_query_filters_is_flagged(self) -> None:
        diagnostics = run_rule(self.rule, self.tree)

        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(flagged_text(self.tree, diagnostics[0]), "_db.Users.IgnoreQueryFilters()")

    def test_fix_removes_the_call(self) -> None:
        result = fix_all(self.rule, self.tree)

        self.assertIn("return _db.Users.ToList();", result.tree.source)
        self.assertEqual(run_rule(self.rule, result.tree), [])


class TestAsNoTrackingWithUpdateRule(unittest.TestCase):
    def setUp(self) -> None:
        self.shop = ShopModel()
        self.rule = AsNoTrackingWithUpdateRule()

    def _update_tree(self, no_tracking: bool = True):
        s = self.shop
        rename = s.method(s.service, "Rename", params=(("id", "int"),))
        user = s.local(rename, "user", "User")
        source = s.linq(s.users(), "AsNoTracking") if no_tracking else s.users()
        by_id = s.lam("User", lambda u: s.binary(s.member(u, s.user, "Id"), "==", s.ref(s.param(rename, "id"))), "u")
        read = s.var(user, s.linq(source, "FirstOrDefault", by_id))
        update = s.stmt(s.call(s.users(), f"{DB_SET}.Update", s.ref(user)))
        return s.build(s.service_unit(s.method_decl(rename, read, update)))

    def test_untracked_entity_passed_to_update_is_flagged(self) -> None:
        tree = self._update_tree()

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].message_args, ("Update",))
        self.assertEqual(flagged_text(tree, diagnostics[0]), "user")

    def test_fix_removes_as_no_tracking_from_the_source_query(self) -> None:
        result = fix_all(self.rule, self._update_tree())

        self.assertIn("var user = _db.Users.FirstOrDefault(u => u.Id == id);", result.tree.source)
        self.assertEqual(run_rule(self.rule, result.tree), [])

    def test_foreach_over_untracked_list_is_flagged(self) -> None:
        """The loop variable inherits the origin of the list it iterates."""
        s = self.shop
        purge = s.method(s.service, "Purge")
        users = s.local(purge, "users", "List<User>")
        user = s.local(purge, "u", "User")
        read = s.var(users, s.linq(s.linq(s.users(), "AsNoTracking"), "ToList"))
        loop = s.foreach(user, s.ref(users), s.stmt(s.call(s.db(), f"{DB_CONTEXT}.Remove", s.ref(user))))
        tree = s.build(s.service_unit(s.method_decl(purge, read, loop)))

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual([d.message_args for d in diagnostics], [("Remove",)])

    def test_tracked_entity_is_not_flagged(self) -> None:
        self.assertEqual(run_rule(self.rule, self._update_tree(no_tracking=False)), [])


if __name__ == "__main__":
    unittest.main()
