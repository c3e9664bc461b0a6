"""
Mind Map — Canonical Tree Model
================================
Nested, immutable representation of a synthesized mind map.

  • A tree has exactly one root at level 0.
  • Every child sits at ``parent.level + 1``.
  • Node ids are unique across the whole tree.
  • Statistics are computed by traversal, never by trusting a flat array.

Flat, level-tagged collections are accepted only through
``build_tree_from_flat`` which re-nests them in emission order.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ── Presentation hints ───────────────────────────────────────────────────────

ROOT_COLOR = "#00BFFF"
BRANCH_COLOR = "#10B981"
LEAF_COLOR = "#8B5CF6"


def color_for_level(level: int) -> str:
    if level == 0:
        return ROOT_COLOR
    if level == 1:
        return BRANCH_COLOR
    return LEAF_COLOR


# ── Tree ─────────────────────────────────────────────────────────────────────

class MindmapNode(BaseModel):
    """Recursive tree node. ``x``/``y`` belong to the layout collaborator."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    text: str
    description: Optional[str] = None
    level: int = Field(default=0, ge=0)
    children: Tuple[MindmapNode, ...] = ()
    x: Optional[float] = None
    y: Optional[float] = None
    color: Optional[str] = None

    @field_validator("id", "text")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    def walk(self) -> Iterator[MindmapNode]:
        """Pre-order traversal: a node first, then its children in display order."""
        stack: List[MindmapNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


class FlatNode(BaseModel):
    """One entry of a flat, level-tagged node collection."""

    id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    level: int = Field(..., ge=0)
    description: Optional[str] = None
    color: Optional[str] = None


class MindmapStats(BaseModel):
    total_nodes: int
    main_topics: int
    max_depth: int


class MindmapTree(BaseModel):
    """Root aggregate. Construction fails unless every structural invariant holds."""

    model_config = ConfigDict(frozen=True)

    title: str
    root: MindmapNode

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Mind map title must not be blank")
        return v

    @model_validator(mode="after")
    def check_structure(self) -> MindmapTree:
        if self.root.level != 0:
            raise ValueError(f"Root node must be at level 0, got {self.root.level}")

        seen: set[str] = set()
        stack = [self.root]
        while stack:
            node = stack.pop()
            if node.id in seen:
                raise ValueError(f"Duplicate node id '{node.id}'")
            seen.add(node.id)
            for child in node.children:
                if child.level != node.level + 1:
                    raise ValueError(
                        f"Node '{child.id}' has level {child.level}, "
                        f"expected {node.level + 1} under '{node.id}'"
                    )
                stack.append(child)
        return self

    def walk(self) -> Iterator[MindmapNode]:
        return self.root.walk()

    def find(self, node_id: str) -> Optional[MindmapNode]:
        for node in self.walk():
            if node.id == node_id:
                return node
        return None

    def flatten(self) -> List[FlatNode]:
        return [
            FlatNode(
                id=node.id,
                text=node.text,
                level=node.level,
                description=node.description,
                color=node.color,
            )
            for node in self.walk()
        ]

    def stats(self) -> MindmapStats:
        total = 0
        main_topics = 0
        max_depth = 0
        for node in self.walk():
            total += 1
            if node.level == 1:
                main_topics += 1
            max_depth = max(max_depth, node.level)
        return MindmapStats(total_nodes=total, main_topics=main_topics, max_depth=max_depth)

    def with_positions(self, positions: Mapping[str, Tuple[float, float]]) -> MindmapTree:
        """
        Return a copy carrying layout coordinates. Used by the layout
        collaborator; nodes missing from ``positions`` keep their current values.
        """
        def place(node: MindmapNode) -> MindmapNode:
            update: Dict[str, Any] = {"children": tuple(place(c) for c in node.children)}
            if node.id in positions:
                update["x"], update["y"] = positions[node.id]
            return node.model_copy(update=update)

        return self.model_copy(update={"root": place(self.root)})


# ── Flat → nested reconstruction ─────────────────────────────────────────────

def build_tree_from_flat(
    title: str,
    nodes: Sequence[Union[FlatNode, Mapping[str, Any]]],
) -> MindmapTree:
    """
    Re-nest a flat, level-tagged collection.

    Nodes are walked in emission order; each one is attached to the most
    recent node at ``level - 1``. Raises ValueError when the sequence cannot
    form a single-rooted tree.
    """
    if not nodes:
        raise ValueError("Flat node collection is empty")

    root: Optional[Dict[str, Any]] = None
    path: List[Dict[str, Any]] = []  # path[i] is the most recent node at level i

    for raw in nodes:
        item = raw if isinstance(raw, FlatNode) else FlatNode.model_validate(raw)
        entry = item.model_dump(exclude_none=True)
        entry["children"] = []

        if item.level == 0:
            if root is not None:
                raise ValueError(f"Second root node '{item.id}' at level 0")
            root = entry
            path = [entry]
            continue

        if root is None:
            raise ValueError(f"First node '{item.id}' must be at level 0, got {item.level}")
        if item.level > len(path):
            raise ValueError(
                f"Node '{item.id}' at level {item.level} has no parent at level {item.level - 1}"
            )

        del path[item.level:]
        path[-1]["children"].append(entry)
        path.append(entry)

    return MindmapTree.model_validate({"title": title, "root": root})
