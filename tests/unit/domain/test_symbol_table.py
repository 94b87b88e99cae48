import unittest

from contraband_linter.domain.symbols import ARRAY_TYPE, Attribute, Symbol, SymbolKind, TypeRef
from tests.linter_test_utils import ShopModel

EF = "Microsoft.EntityFrameworkCore"
GENERIC = "System.Collections.Generic"


class TestTypeRef(unittest.TestCase):
    def test_parse_nested_generics(self) -> None:
        ref = TypeRef.parse("Dictionary<int, List<User>>")

        self.assertEqual(ref, TypeRef("Dictionary", (TypeRef("int"), TypeRef("List", (TypeRef("User"),)))))
        self.assertEqual(ref.display(), "Dictionary<int, List<User>>")

    def test_arrays_and_nullable_suffix(self) -> None:
        self.assertEqual(TypeRef.parse("User[]"), TypeRef(ARRAY_TYPE, (TypeRef("User"),)))
        self.assertEqual(str(TypeRef.parse("User[]")), "User[]")
        self.assertEqual(TypeRef.parse("int?"), TypeRef("int"))

    def test_resolver_is_applied_to_every_name(self) -> None:
        ref = TypeRef.parse("List<User>", lambda name: f"Shop.{name}")

        self.assertEqual(ref.name, "Shop.List")
        self.assertEqual(ref.args[0].name, "Shop.User")
        self.assertEqual(ref.display(), "List<User>")

    def test_malformed_names_are_rejected(self) -> None:
        for text in ("", "List<User", "User extra", "<int>"):
            with self.subTest(text=text), self.assertRaises(ValueError):
                TypeRef.parse(text)

    def test_substitute_replaces_type_parameters(self) -> None:
        ref = TypeRef.parse("Dictionary<K, List<T>>")

        result = ref.substitute({"K": TypeRef("int"), "T": TypeRef("User")})

        self.assertEqual(result.display(), "Dictionary<int, List<User>>")
        self.assertEqual(TypeRef("int").substitute({"T": TypeRef("User")}), TypeRef("int"))


class TestAttribute(unittest.TestCase):
    def test_matches_ignores_namespace_and_suffix(self) -> None:
        attribute = Attribute("System.ComponentModel.DataAnnotations.KeyAttribute")

        self.assertTrue(attribute.matches("Key"))
        self.assertFalse(attribute.matches("ForeignKey"))


class TestSymbolTable(unittest.TestCase):
    """Queries over the library surface plus the Shop model's source types."""

    def setUp(self) -> None:
        self.shop = ShopModel()
        self.symbols = self.shop.symbols

    def test_source_types_resolve_by_short_name(self) -> None:
        ref = self.symbols.parse_type("DbSet<User>")

        self.assertEqual(ref, TypeRef(f"{EF}.DbSet", (TypeRef("Shop.User"),)))
        self.assertEqual(self.symbols.type_symbol(ref.args[0]).name, "User")
        self.assertIsNone(self.symbols.type_symbol("Shop.User.Name"))
        self.assertIsNone(self.symbols.get(None))

    def test_supertypes_substitute_type_arguments(self) -> None:
        ref = self.symbols.parse_type("DbSet<User>")

        names = [candidate.display() for candidate in self.symbols.supertypes(ref)]

        self.assertEqual(names[0], "DbSet<User>")
        self.assertIn("IQueryable<User>", names)
        self.assertIn("IEnumerable<User>", names)
        self.assertEqual(len(names), len(set(names)))

    def test_find_supertype_and_derives_from(self) -> None:
        ref = self.symbols.parse_type("List<Order>")

        found = self.symbols.find_supertype(ref, f"{GENERIC}.IEnumerable")

        self.assertEqual(found, TypeRef(f"{GENERIC}.IEnumerable", (TypeRef("Shop.Order"),)))
        self.assertTrue(self.symbols.derives_from("Shop.AppDbContext", f"{EF}.DbContext"))
        self.assertFalse(self.symbols.derives_from("Shop.UserService", f"{EF}.DbContext"))
        self.assertFalse(self.symbols.derives_from(None, f"{EF}.DbContext"))

    def test_base_chain_and_members(self) -> None:
        chain = self.symbols.base_chain("Shop.AppDbContext")
        own = {member.name for member in self.symbols.members_of("Shop.AppDbContext", inherited=False)}
        inherited = {member.name for member in self.symbols.members_of("Shop.AppDbContext")}

        self.assertEqual([symbol.id for symbol in chain], ["Shop.AppDbContext", f"{EF}.DbContext"])
        self.assertIn("Users", own)
        self.assertNotIn("SaveChanges", own)
        self.assertTrue({"Users", "SaveChanges", "Entry"} <= inherited)

    def test_find_member_returns_the_constructed_owner(self) -> None:
        count, owner = self.symbols.find_member(self.symbols.parse_type("List<User>"), "Count")
        save, context = self.symbols.find_member(TypeRef("Shop.AppDbContext"), "SaveChanges")

        self.assertEqual(count.id, f"{GENERIC}.List.Count")
        self.assertEqual(owner.display(), "List<User>")
        self.assertIs(save.kind, SymbolKind.METHOD)
        self.assertEqual(context, TypeRef(f"{EF}.DbContext"))
        self.assertIsNone(self.symbols.find_member(self.symbols.parse_type("IQueryable<User>"), "Where"))

    def test_extension_methods_are_indexed_by_name(self) -> None:
        where = self.symbols.extension_methods("Where")
        include = self.symbols.extension_methods("Include")

        self.assertEqual(
            {method.containing_type for method in where},
            {"System.Linq.Queryable", "System.Linq.Enumerable"},
        )
        self.assertTrue(all(method.parameters[0].is_extension_receiver for method in where))
        self.assertEqual([method.containing_type for method in include], [f"{EF}.EntityFrameworkQueryableExtensions"])
        self.assertEqual(self.symbols.extension_methods("SaveChanges"), [])

    def test_with_symbols_leaves_the_original_untouched(self) -> None:
        coupon = Symbol(id="Shop.Coupon", kind=SymbolKind.TYPE, name="Coupon", namespace="Shop", is_source=True)

        extended = self.symbols.with_symbols([coupon])

        self.assertIn("Shop.Coupon", extended)
        self.assertNotIn("Shop.Coupon", self.symbols)
        self.assertEqual(len(extended), len(self.symbols) + 1)
        self.assertEqual(extended.resolve_type_name("Coupon"), "Shop.Coupon")


if __name__ == "__main__":
    unittest.main()
