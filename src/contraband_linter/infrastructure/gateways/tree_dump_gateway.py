"""Load analyzed units from YAML/JSON tree dumps written by the front end."""

import json
import logging
from pathlib import Path
from typing import cast

import yaml

from contraband_linter.domain.errors import TreeLoadError
from contraband_linter.domain.prelude import StandardLibrary
from contraband_linter.domain.protocols import TreeSourceProtocol
from contraband_linter.domain.symbols import (
    Accessibility,
    Attribute,
    Parameter,
    Symbol,
    SymbolKind,
    SymbolTable,
    TypeRef,
)
from contraband_linter.domain.syntax import Kind, Syntax
from contraband_linter.domain.tree import Tree

logger = logging.getLogger(__name__)

DUMP_SUFFIXES = (".yaml", ".yml", ".json")


class TreeDumpGateway(TreeSourceProtocol):
    """
    Reads one unit per file: ``path`` (the original source path), ``symbols``
    (the unit's own declarations; library symbols come from the prelude) and
    ``root`` (the syntax tree as nested mappings).

    Type references are written as C# type text (``IQueryable<User>``) and are
    resolved against the prelude plus the unit's own type symbols.
    """

    def discover(self, paths: list[str]) -> list[str]:
        found: list[str] = []
        for raw in paths:
            path = Path(raw)
            if path.is_dir():
                found.extend(
                    str(candidate)
                    for candidate in sorted(path.rglob("*"))
                    if candidate.is_file() and candidate.suffix in DUMP_SUFFIXES
                )
            elif path.is_file():
                found.append(str(path))
            else:
                raise TreeLoadError(f"No such file or directory: {raw}")
        return found

    def load(self, path: str) -> Tree:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise TreeLoadError(f"Cannot read {path}: {exc}") from exc
        try:
            data = json.loads(text) if path.endswith(".json") else yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise TreeLoadError(f"Malformed tree dump {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise TreeLoadError(f"Malformed tree dump {path}: expected a mapping at the top level")
        return self.from_document(cast(dict[str, object], data), default_path=path)

    def from_document(self, data: dict[str, object], default_path: str = "<memory>") -> Tree:
        """Build a Tree from an already parsed dump document."""
        unit_path = str(data.get("path") or default_path)
        raw_symbols = data.get("symbols") or []
        raw_root = data.get("root")
        if not isinstance(raw_symbols, list) or not isinstance(raw_root, dict):
            raise TreeLoadError(f"Malformed tree dump {unit_path}: needs a 'symbols' list and a 'root' mapping")
        try:
            symbols = self._symbols(raw_symbols)
            root = self._syntax(raw_root, symbols)
        except (KeyError, TypeError, ValueError) as exc:
            raise TreeLoadError(f"Malformed tree dump {unit_path}: {exc}") from exc
        logger.debug("Loaded %s: %d source symbols", unit_path, len(raw_symbols))
        return Tree(root, symbols, unit_path)

    # -- symbols ---------------------------------------------------------------

    def _symbols(self, raw_symbols: list[object]) -> SymbolTable:
        entries = [cast(dict[str, object], entry) for entry in raw_symbols if isinstance(entry, dict)]
        if len(entries) != len(raw_symbols):
            raise ValueError("every symbol must be a mapping")
        # Names first, so type text can refer to any type the unit declares.
        skeleton = StandardLibrary.table([self._symbol(entry, None) for entry in entries])
        return StandardLibrary.table([self._symbol(entry, skeleton) for entry in entries])

    def _symbol(self, entry: dict[str, object], table: SymbolTable | None) -> Symbol:
        def type_of(key: str) -> TypeRef | None:
            raw = entry.get(key)
            if raw is None or table is None:
                return None
            return table.parse_type(str(raw))

        kind = SymbolKind(str(entry["kind"]))
        name = str(entry["name"])
        namespace = str(entry.get("namespace", ""))
        symbol_id = str(entry.get("id") or (f"{namespace}.{name}" if namespace else name))
        parameters = tuple(
            Parameter(
                name=str(raw["name"]),
                type=table.parse_type(str(raw["type"])) if table is not None else TypeRef(str(raw["type"])),
                is_extension_receiver=bool(raw.get("is_extension_receiver", False)),
                has_default=bool(raw.get("has_default", False)),
            )
            for raw in cast(list[dict[str, object]], entry.get("parameters") or [])
        )
        return Symbol(
            id=symbol_id,
            kind=kind,
            name=name,
            namespace=namespace,
            declared_type=type_of("declared_type"),
            containing_type=cast(str | None, entry.get("containing_type")),
            attributes=tuple(self._attribute(raw) for raw in cast(list[object], entry.get("attributes") or [])),
            accessibility=Accessibility(str(entry.get("accessibility", "public"))),
            parameters=parameters,
            return_type=type_of("return_type"),
            is_async=bool(entry.get("is_async", False)),
            is_static=bool(entry.get("is_static", False)),
            is_extension=bool(entry.get("is_extension", False)),
            base_type=type_of("base_type"),
            interfaces=tuple(
                table.parse_type(str(raw)) for raw in cast(list[object], entry.get("interfaces") or [])
            )
            if table is not None
            else (),
            type_parameters=tuple(str(raw) for raw in cast(list[object], entry.get("type_parameters") or [])),
            members=tuple(str(raw) for raw in cast(list[object], entry.get("members") or [])),
            type_kind=str(entry.get("type_kind", "class")),
            is_source=bool(entry.get("is_source", True)),
        )

    def _attribute(self, raw: object) -> Attribute:
        """`Key`, `ForeignKey("Owner")` or a mapping with name/args."""
        if isinstance(raw, dict):
            return Attribute(str(raw["name"]), tuple(str(arg) for arg in raw.get("args") or []))
        text = str(raw).strip()
        name, _, rest = text.partition("(")
        args = tuple(arg.strip() for arg in rest.rstrip(")").split(",") if arg.strip()) if rest else ()
        return Attribute(name.strip(), args)

    # -- syntax ----------------------------------------------------------------

    def _syntax(self, raw: dict[str, object], symbols: SymbolTable) -> Syntax:
        children = tuple(
            self._syntax(cast(dict[str, object], child), symbols)
            for child in cast(list[object], raw.get("children") or [])
        )
        static_type = raw.get("type")
        return Syntax(
            kind=Kind(str(raw["kind"])),
            children=children,
            name=str(raw.get("name", "")),
            operator=str(raw.get("operator", "")),
            value=str(raw.get("value", "")),
            modifiers=tuple(str(item) for item in cast(list[object], raw.get("modifiers") or [])),
            type_name=str(raw.get("type_name", "")),
            attributes=tuple(str(item) for item in cast(list[object], raw.get("attributes") or [])),
            symbol=cast(str | None, raw.get("symbol")),
            type=symbols.parse_type(str(static_type)) if static_type is not None else None,
            leading=str(raw.get("leading", "")),
            trailing=str(raw.get("trailing", "")),
        )
