import unittest

from contraband_linter.domain.chain import (
    bind_arguments,
    chain_root,
    downstream_calls,
    enclosing_statement,
    lambda_body,
    method_name,
    name_node,
    query_lambda_call,
    references_to,
    semantic_arguments,
    upstream_calls,
    walk_upstream,
)
from contraband_linter.domain.syntax import Kind
from contraband_linter.domain.tree import Node, Tree
from tests.linter_test_utils import ShopModel


def find(tree: Tree, text: str, kind: Kind) -> Node:
    return next(node for node in tree.walk() if node.kind is kind and tree.text(node) == text)


class TestReceiverChains(unittest.TestCase):
    """`return _db.Users.Where(u => u.Name == name).OrderBy(u => u.Email).ToList();`"""

    def setUp(self) -> None:
        self.shop = ShopModel()
        s = self.shop
        self.search = s.method(s.service, "Search", "List<User>", params=(("name", "string"),))
        name = s.ref(s.param(self.search, "name"))
        filtered = s.linq(s.users(), "Where", s.lam("User", lambda u: s.binary(s.member(u, s.user, "Name"), "==", name), "u"))
        ordered = s.linq(filtered, "OrderBy", s.lam("User", lambda u: s.member(u, s.user, "Email"), "u"))
        self.tree = s.build(s.service_unit(s.method_decl(self.search, s.ret(s.linq(ordered, "ToList")))))
        self.to_list = next(node for node in self.tree.nodes_of_kind(Kind.CALL) if method_name(self.tree, node) == "ToList")

    def test_walk_upstream_visits_each_receiver_once(self) -> None:
        steps = list(walk_upstream(self.tree, self.to_list))

        self.assertEqual(
            [step.kind for step in steps],
            [Kind.CALL, Kind.CALL, Kind.CALL, Kind.MEMBER_ACCESS, Kind.IDENTIFIER],
        )
        self.assertEqual([method_name(self.tree, step) for step in steps[:3]], ["ToList", "OrderBy", "Where"])
        self.assertEqual(len({step.index for step in steps}), len(steps))

    def test_chain_root_is_the_context_field(self) -> None:
        root = chain_root(self.tree, self.to_list)

        self.assertEqual(self.tree.text(root), "_db")
        self.assertEqual(root.symbol, self.shop.db_field.id)

    def test_upstream_and_downstream_calls_are_nearest_first(self) -> None:
        users = find(self.tree, "_db.Users", Kind.MEMBER_ACCESS)

        self.assertEqual([method_name(self.tree, call) for call in upstream_calls(self.tree, self.to_list)], ["OrderBy", "Where"])
        self.assertEqual([method_name(self.tree, call) for call in downstream_calls(self.tree, users)], ["Where", "OrderBy", "ToList"])

    def test_extension_receiver_binds_to_the_source_parameter(self) -> None:
        where = next(node for node in self.tree.nodes_of_kind(Kind.CALL) if method_name(self.tree, node) == "Where")

        bound = bind_arguments(self.tree, where)
        arguments = semantic_arguments(self.tree, where)

        self.assertEqual(set(bound), {"source", "predicate"})
        self.assertEqual(self.tree.text(bound["source"]), "_db.Users")
        self.assertEqual(bound["predicate"].kind, Kind.LAMBDA)
        self.assertEqual([node.index for node in arguments], [bound["source"].index, bound["predicate"].index])

    def test_name_node_points_at_the_method_name(self) -> None:
        self.assertEqual(self.tree.text(name_node(self.tree, self.to_list)), "ToList")

    def test_lambda_helpers(self) -> None:
        """A node inside a lambda leads back to the operator the lambda is passed to."""
        user_name = find(self.tree, "u.Name", Kind.MEMBER_ACCESS)
        lambda_node = next(self.tree.nodes_of_kind(Kind.LAMBDA))

        self.assertEqual(method_name(self.tree, query_lambda_call(self.tree, user_name)), "Where")
        self.assertEqual(self.tree.text(lambda_body(self.tree, lambda_node)), "u.Name == name")
        self.assertIsNone(query_lambda_call(self.tree, self.to_list))

    def test_enclosing_statement_and_references(self) -> None:
        method = next(self.tree.nodes_of_kind(Kind.METHOD))
        statement = enclosing_statement(self.tree, self.to_list)

        self.assertEqual(statement.kind, Kind.RETURN)
        self.assertEqual(len(references_to(self.tree, method, self.shop.db_field.id)), 1)
        self.assertEqual(len(references_to(self.tree, method, f"{self.search.id}.name")), 1)


class TestChainRoots(unittest.TestCase):
    def setUp(self) -> None:
        self.shop = ShopModel()

    def test_static_member_is_its_own_root(self) -> None:
        s = self.shop
        method = s.method(s.service, "Stamp", "DateTime")
        now = s.access(s.type_name("System.DateTime"), "System.DateTime.Now")
        tree = s.build(s.service_unit(s.method_decl(method, s.ret(now))))
        access = find(tree, "DateTime.Now", Kind.MEMBER_ACCESS)

        self.assertEqual([step.index for step in walk_upstream(tree, access)], [access.index])

    def test_collection_constructor_walks_into_its_source(self) -> None:
        """`new List<User>(_db.Users)` copies the query it is given."""
        s = self.shop
        method = s.method(s.service, "Copy", "List<User>")
        tree = s.build(s.service_unit(s.method_decl(method, s.ret(s.new("List<User>", s.users())))))
        creation = next(tree.nodes_of_kind(Kind.OBJECT_CREATION))

        self.assertEqual(tree.text(chain_root(tree, creation)), "_db")


if __name__ == "__main__":
    unittest.main()
