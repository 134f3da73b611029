# identity_server/api/schema_store.py
"""
Immutable index over the domain schema (GraphQL SDL): user type -> fields, directives.

User types are object types implementing the `User` interface. Each field's kind is
taken from a `@<kind>Field` directive (its arguments become the field constraints),
falling back to the lower-cased GraphQL named type. Directives attached to a type
(including type extensions) are kept in declaration order.

The SDL is parsed and validated once with graphql-core; lookups afterwards are pure.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from graphql import (
    GraphQLError,
    GraphQLObjectType,
    build_ast_schema,
    get_named_type,
    parse,
    value_from_ast_untyped,
)

from identity_server.api.utils.logger import write_log

USER_INTERFACE = "User"
FIELD_DIRECTIVE_SUFFIX = "Field"

# directives that parameterize workflows; at most one instance per type
POLICY_DIRECTIVES = ("emailChange", "passwordAuthenticator")


class SchemaConfigurationError(Exception):
    """The domain schema is invalid or ambiguous."""


@dataclass(frozen=True)
class Directive:
    name: str
    args: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldDef:
    name: str
    type: str
    constraints: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UserType:
    name: str
    fields: Mapping[str, FieldDef]
    directives: Tuple[Directive, ...]

    def get_field(self, name: Optional[str]) -> Optional[FieldDef]:
        if not name:
            return None
        return self.fields.get(name)

    def get_directives(self) -> Tuple[Directive, ...]:
        return self.directives

    def get_directive(self, name: str) -> Optional[Directive]:
        for directive in self.directives:
            if directive.name == name:
                return directive
        return None


def _directive_args(node) -> Dict[str, Any]:
    return {arg.name.value: value_from_ast_untyped(arg.value) for arg in node.arguments or ()}


def _field_def(name: str, gql_field) -> FieldDef:
    kind = get_named_type(gql_field.type).name.lower()
    constraints: Dict[str, Any] = {}
    for node in getattr(gql_field.ast_node, "directives", None) or ():
        directive_name = node.name.value
        if directive_name.endswith(FIELD_DIRECTIVE_SUFFIX) and len(directive_name) > len(FIELD_DIRECTIVE_SUFFIX):
            kind = directive_name[: -len(FIELD_DIRECTIVE_SUFFIX)]
            constraints = _directive_args(node)
            break
    return FieldDef(name=name, type=kind, constraints=MappingProxyType(constraints))


def _type_directives(gql_type: GraphQLObjectType) -> Tuple[Directive, ...]:
    nodes: List[Any] = []
    for ast_node in [gql_type.ast_node, *(gql_type.extension_ast_nodes or ())]:
        if ast_node is not None:
            nodes.extend(ast_node.directives or ())
    directives = tuple(Directive(node.name.value, MappingProxyType(_directive_args(node))) for node in nodes)

    seen = set()
    for directive in directives:
        if directive.name in POLICY_DIRECTIVES:
            if directive.name in seen:
                raise SchemaConfigurationError(
                    f'type "{gql_type.name}" declares @{directive.name} more than once'
                )
            seen.add(directive.name)
    return directives


class SchemaStore:
    def __init__(self, user_types: Iterable[UserType]):
        self._types = MappingProxyType({t.name: t for t in user_types})

    @classmethod
    def from_sdl(cls, sdl: str) -> "SchemaStore":
        try:
            schema = build_ast_schema(parse(sdl))
        except GraphQLError as e:
            raise SchemaConfigurationError(f"invalid domain schema: {e.message}") from e
        except TypeError as e:
            raise SchemaConfigurationError(f"invalid domain schema: {e}") from e

        user_types = []
        for name, gql_type in schema.type_map.items():
            if name.startswith("__") or not isinstance(gql_type, GraphQLObjectType):
                continue
            if USER_INTERFACE not in [iface.name for iface in gql_type.interfaces]:
                continue
            fields = {fname: _field_def(fname, gql_field) for fname, gql_field in gql_type.fields.items()}
            user_types.append(UserType(name=name, fields=MappingProxyType(fields), directives=_type_directives(gql_type)))

        store = cls(user_types)
        write_log({"event": "domain_schema_loaded", "user_types": store.type_names()}, stream="system")
        return store

    @classmethod
    def from_file(cls, path: str) -> "SchemaStore":
        with open(path, encoding="utf-8") as f:
            return cls.from_sdl(f.read())

    def get_user_type(self, name: Optional[str]) -> Optional[UserType]:
        if not name:
            return None
        return self._types.get(name)

    def type_names(self) -> List[str]:
        return sorted(self._types)
