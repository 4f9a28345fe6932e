"""Column type descriptions, node maps and schemas for columnar output files."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping, MutableMapping

RLE_DICTIONARY = "RLE_DICTIONARY"
ZSTD = "ZSTD"

_DICTIONARY_FIELD_OVERRIDE: dict[str, bool] = {
    "_cardinalhq.message": False,
    "_cardinalhq.tid": False,
}

_INT_PHYSICAL = {8: "INT32", 16: "INT32", 32: "INT32", 64: "INT64"}


@dataclass(frozen=True)
class Node:
    """The type of one column.

    Two nodes are equal when they describe the same values; the encoding and
    compression of the leaf values do not take part in the comparison.
    """

    physical_type: str
    logical_type: str | None = None
    is_list: bool = False
    optional: bool = True
    encoding: str | None = field(default=None, compare=False)
    compression: str | None = field(default=None, compare=False)

    @property
    def leaf(self) -> bool:
        """True for a single value column, False for a list column."""
        return not self.is_list

    def __str__(self) -> str:
        text = self.physical_type.lower()
        if self.logical_type:
            text += f" ({self.logical_type})"
        if self.is_list:
            text = f"list<{text}>"
        return ("optional " if self.optional else "required ") + text


def _int_node(bits: int, signed: bool = True) -> Node:
    return Node(_INT_PHYSICAL[bits], f"INT({bits},{'true' if signed else 'false'})")


_BOOLEAN = Node("BOOLEAN")
_DOUBLE = Node("DOUBLE")
_BYTE_ARRAY = Node("BYTE_ARRAY")
_STRING = Node("BYTE_ARRAY", "STRING")


@dataclass
class Schema:
    """A named group of columns."""

    name: str
    fields: dict[str, Node]

    def __post_init__(self) -> None:
        self.fields = dict(sorted(self.fields.items()))

    @property
    def columns(self) -> list[str]:
        """Column names in sorted order."""
        return list(self.fields)


def want_dictionary(name: str) -> bool:
    """Return whether a field should use dictionary encoding."""
    return _DICTIONARY_FIELD_OVERRIDE.get(name, True)


def _scalar_node(value: Any) -> Node | None:
    if isinstance(value, bool):
        return _BOOLEAN
    if isinstance(value, int):
        return _int_node(64)
    if isinstance(value, float):
        return _DOUBLE
    if isinstance(value, str):
        return _STRING
    return None


def parquet_node_from_type(name: str, value: Any) -> Node:
    """Return the column node for a sample value; raises TypeError if unsupported."""
    encoding = RLE_DICTIONARY if want_dictionary(name) else None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _BYTE_ARRAY
    scalar = _scalar_node(value)
    if scalar is not None:
        return replace(scalar, encoding=encoding)
    if isinstance(value, (list, tuple)):
        if not value:
            raise TypeError(f"cannot infer element type of empty list for {name!r}")
        elements = {_scalar_node(item) for item in value}
        if None in elements:
            raise TypeError(f"unsupported list element type for {name!r}")
        if len(elements) != 1:
            raise TypeError(f"mixed list element types for {name!r}")
        (element,) = elements
        return replace(element, is_list=True, encoding=encoding)
    raise TypeError(f"unsupported type {type(value).__name__}")


def _merge_node(nodes: MutableMapping[str, Node], name: str, node: Node) -> None:
    existing = nodes.get(name)
    if existing is None:
        nodes[name] = node
    elif existing != node:
        raise ValueError(f"type mismatch for field {name!r}: existing={existing}, new={node}")


class NodeMapBuilder:
    """Accumulates example rows into one consistent map of column nodes."""

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}

    def add(self, example: Mapping[str, Any]) -> None:
        """Merge the types of the non-None fields of an example row."""
        for name, value in example.items():
            if value is None:
                continue
            try:
                node = parquet_node_from_type(name, value)
            except TypeError as exc:
                raise TypeError(f"failed to build node for field {name!r}: {exc}") from exc
            _merge_node(self._nodes, name, node)

    def add_nodes(self, nodes: Mapping[str, Node]) -> None:
        """Merge already built nodes."""
        for name, node in nodes.items():
            _merge_node(self._nodes, name, node)

    def build(self) -> dict[str, Node]:
        """Return a copy of the consolidated node map."""
        return dict(self._nodes)


def nodes_from_map(nodes: MutableMapping[str, Node], tags: Mapping[str, Any]) -> None:
    """Add nodes for the non-None values of tags to nodes, checking for conflicts."""
    for key, value in tags.items():
        if value is None:
            continue
        try:
            node = parquet_node_from_type(key, value)
        except TypeError as exc:
            raise TypeError(f"node from type for key {key}: {exc}") from exc
        existing = nodes.get(key)
        if existing is not None:
            if existing != node:
                raise ValueError(f"type mismatch for key {key}: existing {existing}, new {node}")
            continue
        nodes[key] = node


def parquet_schema_from_nodemap(name: str, fields: Mapping[str, Node]) -> Schema:
    """Build a schema of the given name from a node map."""
    return Schema(name, dict(fields))


def _wrap(node: Node) -> Node:
    return replace(
        node,
        compression=ZSTD,
        encoding=RLE_DICTIONARY if node.leaf else node.encoding,
        optional=True,
    )


NODE_TYPE_MAP: dict[str, Node] = {
    "INT8": _wrap(_int_node(8)),
    "INT16": _wrap(_int_node(16)),
    "INT32": _wrap(_int_node(32)),
    "INT64": _wrap(_int_node(64)),
    "DOUBLE": _wrap(_DOUBLE),
    "BOOLEAN": _wrap(_BOOLEAN),
    "BYTE_ARRAY": _wrap(_BYTE_ARRAY),
}

_LOGICAL_NODES: dict[str, Node] = {
    "STRING": _wrap(_STRING),
}


def schema_type_to_node(typ: str, logical: str) -> Node:
    """Map a stored column's physical and logical type names to a node."""
    node = _LOGICAL_NODES.get(logical) or NODE_TYPE_MAP.get(typ)
    if node is None:
        raise ValueError(f"unsupported type: {typ}, logical {logical}")
    return node


def merge_nodes(file_nodes: Mapping[str, Node], merged_nodes: MutableMapping[str, Node]) -> None:
    """Merge one file's nodes into merged_nodes, raising ValueError on conflicts."""
    for name, node in file_nodes.items():
        existing = merged_nodes.get(name)
        if existing is None:
            merged_nodes[name] = node
        elif existing != node:
            raise ValueError(f"schema mismatch: {name}, currentType {node}, newType {existing}")


def schema_from_nodes(nodes: Mapping[str, Node]) -> Schema:
    """Build the merged schema from a node map."""
    return Schema("merged", dict(nodes))