import unittest

from contraband_linter.domain import syntax as sx
from contraband_linter.domain.rules.lifetime import DbContextInSingletonRule, DisposedContextQueryRule
from contraband_linter.domain.syntax import Kind, Syntax
from tests.linter_test_utils import DB_CONTEXT, ShopModel, fix_all, flagged_text, run_rule


class TestDisposedContextQueryRule(unittest.TestCase):
    def setUp(self) -> None:
        self.shop = ShopModel()
        self.rule = DisposedContextQueryRule()
        s = self.shop
        self.query = s.method(s.service, "Query", "IQueryable<User>", params=(("name", "string"),))
        self.db = s.local(self.query, "db", "AppDbContext")

    def _filtered(self) -> Syntax:
        s = self.shop
        name = s.ref(s.param(self.query, "name"))
        users = s.access(s.ref(self.db), "Shop.AppDbContext.Users")
        return s.linq(users, "Where", s.lam("User", lambda u: s.binary(s.member(u, s.user, "Name"), "==", name), "u"))

    def _tree(self, *statements: Syntax):
        s = self.shop
        return s.build(s.service_unit(s.method_decl(self.query, *statements)))

    def test_query_over_using_declared_context_is_flagged(self) -> None:
        """`using var db = ...; return db.Users.Where(...);` hands out a dead context."""
        s = self.shop
        tree = self._tree(s.var(self.db, s.new("AppDbContext"), using=True), s.ret(self._filtered()))

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].message_args, ("db",))
        self.assertEqual(flagged_text(tree, diagnostics[0]), "db.Users.Where(u => u.Name == name)")
        self.assertEqual(len(diagnostics[0].secondary_locations), 1)

    def test_using_statement_block_is_flagged(self) -> None:
        s = self.shop
        declarator = sx.declarator("db", s.new("AppDbContext"), symbol=self.db.id)
        scoped = Syntax(Kind.USING_STATEMENT, children=(declarator, sx.block(s.ret(self._filtered()))))
        tree = self._tree(scoped)

        self.assertIn("using (var db = new AppDbContext())", tree.source)
        self.assertEqual(len(run_rule(self.rule, tree)), 1)

    def test_context_without_using_is_not_flagged(self) -> None:
        s = self.shop
        tree = self._tree(s.var(self.db, s.new("AppDbContext")), s.ret(self._filtered()))

        self.assertEqual(run_rule(self.rule, tree), [])

    def test_materialized_result_is_not_flagged(self) -> None:
        s = self.shop
        tree = self._tree(s.var(self.db, s.new("AppDbContext"), using=True), s.ret(s.linq(self._filtered(), "ToList")))

        self.assertEqual(run_rule(self.rule, tree), [])


class TestDbContextInSingletonRule(unittest.TestCase):
    def setUp(self) -> None:
        self.shop = ShopModel()
        self.rule = DbContextInSingletonRule()

    def _service(self):
        s = self.shop
        ctor = s.constructor(s.service, params=(("db", "AppDbContext"),))
        get_all = s.method(s.service, "GetAll", "List<User>")
        count = s.method(s.service, "Count", "int")
        assign = s.stmt(s.assign(s.db(), s.ref(s.param(ctor, "db"))))
        return s.build(
            s.service_unit(
                s.method_decl(ctor, assign),
                s.method_decl(get_all, s.ret(s.linq(s.users(), "ToList"))),
                s.method_decl(count, expression=s.linq(s.users(), "Count")),
            )
        )

    def test_context_field_in_service_is_flagged(self) -> None:
        tree = self._service()

        diagnostics = run_rule(self.rule, tree)

        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].message_args, ("UserService", "_db"))
        self.assertEqual(flagged_text(tree, diagnostics[0]), "private readonly AppDbContext _db;")

    def test_fix_switches_to_a_context_factory(self) -> None:
        """Field, constructor and every method that used the context are rewritten together."""
        result = fix_all(self.rule, self._service())
        source = result.tree.source

        self.assertIn("using Microsoft.EntityFrameworkCore;", source)
        self.assertIn("private readonly IDbContextFactory<AppDbContext> _dbFactory;", source)
        self.assertIn("public UserService(IDbContextFactory<AppDbContext> dbFactory)", source)
        self.assertIn("_dbFactory = dbFactory;", source)
        self.assertEqual(source.count("using var db = _dbFactory.CreateDbContext();"), 2)
        self.assertIn("return db.Users.ToList();", source)
        self.assertIn("return db.Users.Count();", source)
        self.assertEqual(run_rule(self.rule, result.tree), [])

    def test_fix_only_retypes_the_parameter_stored_in_the_member(self) -> None:
        """`this._db = db; seed.SaveChanges();` keeps `seed` as a plain context."""
        s = self.shop
        ctor = s.constructor(s.service, params=(("db", "AppDbContext"), ("seed", "AppDbContext")))
        store = s.stmt(s.assign(s.access(s.this(), s.db_field.id), s.ref(s.param(ctor, "db"))))
        warm_up = s.stmt(s.call(s.ref(s.param(ctor, "seed")), f"{DB_CONTEXT}.SaveChanges"))
        tree = s.build(s.service_unit(s.method_decl(ctor, store, warm_up)))

        source = fix_all(self.rule, tree).tree.source

        self.assertIn("public UserService(IDbContextFactory<AppDbContext> dbFactory, AppDbContext seed)", source)
        self.assertIn("this._dbFactory = dbFactory;", source)
        self.assertIn("seed.SaveChanges();", source)
        self.assertNotIn("seedFactory", source)

    def test_scoped_hosts_and_static_fields_are_not_flagged(self) -> None:
        s = self.shop
        controller = s.declare_class("UsersController")
        scoped_field = s.field(controller, "_db", "AppDbContext")
        static_field = s.field(s.service, "Shared", "AppDbContext", is_static=True)
        tree = s.build(
            s.unit(
                s.class_decl(controller, s.field_decl(scoped_field)),
                s.class_decl(s.service, s.field_decl(static_field, modifiers=("private", "static"))),
            )
        )

        self.assertEqual(run_rule(self.rule, tree), [])

    def test_configured_suffixes_replace_the_defaults(self) -> None:
        s = self.shop
        handler = s.declare_class("OrdersHandler")
        field = s.field(handler, "_db", "AppDbContext")
        tree = s.build(s.unit(s.class_decl(handler, s.field_decl(field))))

        self.assertEqual(len(run_rule(self.rule, tree)), 1)
        self.assertEqual(run_rule(DbContextInSingletonRule(scoped_host_suffixes=("Handler",)), tree), [])


if __name__ == "__main__":
    unittest.main()
