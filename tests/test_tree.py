"""Unit tests for notetree.documents.tree — building, sorting and lookups."""

from notetree.documents.models import Document, Folder, TreeDocument, TreeFolder
from notetree.documents.tree import (
    build_tree,
    collect_record_ids,
    find_context,
    find_folder,
    find_parent_folder_ids,
    flatten_tree,
    sort_tree,
)


def _names(nodes):
    return [n.name for n in nodes]


class TestBuildTree:

    def test_root_order(self, documents, folders):
        tree = build_tree(documents, folders)
        assert _names(tree) == ["Alpha", "Beta", "notes", "archive"]

    def test_nested_structure(self, documents, folders):
        tree = build_tree(documents, folders)
        notes = tree[2]
        assert isinstance(notes, TreeFolder)
        assert notes.id == "documents-root/notes"
        assert notes.record_id == "f-notes"
        assert _names(notes.children) == ["Draft", "sub"]
        sub = notes.children[1]
        assert sub.parent_path == "notes"
        assert _names(sub.children) == ["Essay"]

    def test_synthesizes_missing_folders(self):
        tree = build_tree([Document(id="z", path="deep/er/z.md")], [])
        deep = tree[0]
        assert isinstance(deep, TreeFolder)
        assert deep.record_id is None
        assert deep.sort_order == 0
        assert deep.children[0].path == "deep/er"

    def test_empty_folder_kept(self):
        tree = build_tree([], [Folder(id="f", path="empty")])
        assert tree[0].children == []

    def test_title_fallback_to_filename(self):
        tree = build_tree([Document(id="a", title="  ", path="notes.md")], [])
        assert tree[0].name == "notes"

    def test_skips_empty_paths(self):
        tree = build_tree([Document(id="a", path="")], [Folder(id="f", path="/")])
        assert tree == []

    def test_flatten_recovers_every_id(self, documents, folders):
        document_ids, folder_ids = collect_record_ids(build_tree(documents, folders))
        assert document_ids == {d.id for d in documents}
        assert folder_ids == {f.id for f in folders}

    def test_deterministic(self, documents, folders):
        assert build_tree(documents, folders) == build_tree(list(reversed(documents)), list(reversed(folders)))


class TestSortTree:

    def test_sort_order_then_name(self):
        nodes = [
            TreeDocument(id="3", name="b", sort_order=0, document_id="3", path="b.md"),
            TreeDocument(id="1", name="Z", sort_order=10, document_id="1", path="z.md"),
            TreeDocument(id="2", name="a", sort_order=0, document_id="2", path="a.md"),
        ]
        assert [n.id for n in sort_tree(nodes)] == ["2", "3", "1"]

    def test_missing_sort_order_falls_back_to_name(self):
        nodes = [
            TreeDocument(id="2", name="beta", sort_order=None, document_id="2", path="b.md"),
            TreeDocument(id="1", name="Alpha", sort_order=5, document_id="1", path="a.md"),
        ]
        assert [n.id for n in sort_tree(nodes)] == ["1", "2"]

    def test_idempotent(self, documents, folders):
        tree = build_tree(documents, folders)
        assert sort_tree(sort_tree(tree)) == sort_tree(tree)

    def test_does_not_mutate_input(self):
        nodes = [
            TreeDocument(id="b", name="b", document_id="b", path="b.md"),
            TreeDocument(id="a", name="a", document_id="a", path="a.md"),
        ]
        sort_tree(nodes)
        assert [n.id for n in nodes] == ["b", "a"]


class TestLookups:

    def test_flatten_pre_order(self, documents, folders):
        ids = [n.id for n in flatten_tree(build_tree(documents, folders))]
        assert ids.index("documents-root/notes") < ids.index("d") < ids.index("documents-root/notes/sub")

    def test_find_context_root(self, documents, folders):
        tree = build_tree(documents, folders)
        parent, siblings = find_context(tree, "a")
        assert parent is None
        assert siblings is tree

    def test_find_context_nested(self, documents, folders):
        tree = build_tree(documents, folders)
        parent, siblings = find_context(tree, "e")
        assert parent.path == "notes/sub"
        assert [n.id for n in siblings] == ["e"]

    def test_find_context_missing(self, documents, folders):
        assert find_context(build_tree(documents, folders), "nope") is None

    def test_find_folder(self, documents, folders):
        tree = build_tree(documents, folders)
        assert find_folder(tree, "notes/sub").record_id == "f-sub"
        assert find_folder(tree, "nope") is None
        root = find_folder(tree, "")
        assert root.children == tree

    def test_find_parent_folder_ids(self, documents, folders):
        tree = build_tree(documents, folders)
        assert find_parent_folder_ids(tree, "e") == ["documents-root/notes", "documents-root/notes/sub"]
        assert find_parent_folder_ids(tree, "a") == []
        assert find_parent_folder_ids(tree, "missing") is None
