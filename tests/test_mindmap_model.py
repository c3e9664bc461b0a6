"""
Mind map tree model tests
"""
import pytest
from pydantic import ValidationError

from mindmap_engine.schemas.mindmap import (
    BRANCH_COLOR,
    ROOT_COLOR,
    MindmapNode,
    MindmapTree,
    build_tree_from_flat,
    color_for_level,
)


def _leaf(node_id, level, text="Leaf"):
    return {"id": node_id, "text": text, "level": level}


class TestTreeInvariants:
    """Construction rejects anything that is not a single-rooted, level-consistent tree"""

    def test_valid_tree(self, nested_payload):
        tree = MindmapTree.model_validate(nested_payload)
        assert tree.root.level == 0
        assert [c.id for c in tree.root.children] == ["concept-1", "concept-2"]

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate node id"):
            MindmapTree.model_validate({
                "title": "Dup",
                "root": {"id": "root", "text": "Root", "children": [_leaf("a", 1), _leaf("a", 1)]},
            })

    def test_inconsistent_level_rejected(self):
        with pytest.raises(ValidationError, match="expected 1"):
            MindmapTree.model_validate({
                "title": "Levels",
                "root": {"id": "root", "text": "Root", "children": [_leaf("a", 2)]},
            })

    def test_root_must_be_level_zero(self):
        with pytest.raises(ValidationError, match="level 0"):
            MindmapTree.model_validate({"title": "T", "root": {"id": "r", "text": "Root", "level": 1}})

    @pytest.mark.parametrize("field", ["id", "text"])
    def test_blank_labels_rejected(self, field):
        root = {"id": "root", "text": "Root"}
        root[field] = "   "
        with pytest.raises(ValidationError):
            MindmapTree.model_validate({"title": "T", "root": root})

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            MindmapTree.model_validate({"title": "", "root": {"id": "root", "text": "Root"}})

    def test_tree_is_read_only(self, nested_payload):
        tree = MindmapTree.model_validate(nested_payload)
        with pytest.raises(ValidationError):
            tree.root.text = "changed"
        assert isinstance(tree.root.children, tuple)


class TestTraversal:
    """Statistics come from walking the nested tree"""

    def test_walk_is_preorder(self, nested_payload):
        tree = MindmapTree.model_validate(nested_payload)
        assert [n.id for n in tree.walk()] == [
            "root", "concept-1", "sub-1-1", "sub-1-2", "concept-2", "sub-2-1",
        ]

    def test_stats(self, nested_payload):
        stats = MindmapTree.model_validate(nested_payload).stats()
        assert stats.total_nodes == 6
        assert stats.main_topics == 2
        assert stats.max_depth == 2

    def test_single_node_stats(self):
        tree = MindmapTree(title="Solo", root=MindmapNode(id="root", text="Solo"))
        stats = tree.stats()
        assert (stats.total_nodes, stats.main_topics, stats.max_depth) == (1, 0, 0)
        assert tree.root.children == ()

    def test_find(self, nested_payload):
        tree = MindmapTree.model_validate(nested_payload)
        assert tree.find("sub-2-1").text == "Chloroplasts"
        assert tree.find("missing") is None

    def test_with_positions_copies(self, nested_payload):
        tree = MindmapTree.model_validate(nested_payload)
        placed = tree.with_positions({"root": (0, 0), "sub-1-2": (-200, 100)})

        assert placed.root.x == 0 and placed.root.y == 0
        assert placed.find("sub-1-2").x == -200
        assert placed.find("concept-2").x is None
        assert tree.root.x is None


class TestFlatReconstruction:
    """Flat, level-tagged collections are re-nested in emission order"""

    def test_nests_by_most_recent_parent(self, flat_nodes):
        tree = build_tree_from_flat("Photosynthesis", flat_nodes)

        types = tree.find("concept-1")
        assert [c.id for c in types.children] == ["sub-1-1", "sub-1-2"]
        assert [c.id for c in types.children[0].children] == ["detail-1-1-1"]
        assert [c.id for c in tree.find("concept-2").children] == ["sub-2-1"]

    def test_round_trip_preserves_id_level_order(self, flat_nodes):
        tree = build_tree_from_flat("Photosynthesis", flat_nodes)
        assert [(n.id, n.level) for n in tree.flatten()] == [
            (n["id"], n["level"]) for n in flat_nodes
        ]

    def test_stats_after_reconstruction(self, flat_nodes):
        stats = build_tree_from_flat("Photosynthesis", flat_nodes).stats()
        assert stats.total_nodes == 7
        assert stats.main_topics == 2
        assert stats.max_depth == 3

    def test_level_gap_rejected(self):
        with pytest.raises(ValueError, match="no parent at level 1"):
            build_tree_from_flat("T", [_leaf("root", 0), _leaf("deep", 2)])

    def test_second_root_rejected(self):
        with pytest.raises(ValueError, match="Second root"):
            build_tree_from_flat("T", [_leaf("a", 0), _leaf("b", 0)])

    def test_must_start_at_root(self):
        with pytest.raises(ValueError, match="must be at level 0"):
            build_tree_from_flat("T", [_leaf("a", 1), _leaf("b", 0)])

    def test_empty_rejected(self):
        with pytest.raises(ValueError, match="empty"):
            build_tree_from_flat("T", [])

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            build_tree_from_flat("T", [_leaf("root", 0), _leaf("x", 1), _leaf("x", 1)])


def test_color_for_level():
    assert color_for_level(0) == ROOT_COLOR
    assert color_for_level(1) == BRANCH_COLOR
    assert color_for_level(2) == color_for_level(5)
    assert color_for_level(2) not in (ROOT_COLOR, BRANCH_COLOR)
