"""Unit tests for notetree.sync.explorer — optimistic cache and mutations."""

import asyncio
from unittest.mock import MagicMock

import pytest

from notetree.documents.memory import InMemoryDocumentBackend
from notetree.engine.config import LoggingConfig
from notetree.engine.errors import NoteTreeConflictError, NoteTreeNetworkError, NoteTreeValidationError
from notetree.engine.logging import init_logging, shutdown_logging
from notetree.sync.explorer import DocumentExplorer, trailing_sort_order
from notetree.sync.navigation import Navigator, build_documents_path


async def _loaded(backend, config, **kwargs) -> DocumentExplorer:
    explorer = DocumentExplorer(backend, config=config, **kwargs)
    outcome = await explorer.load_index()
    assert outcome.ok
    return explorer


def _document_ids(explorer):
    return sorted(d.id for d in explorer.store.get().documents)


def _folder_paths(explorer):
    return sorted(f.path for f in explorer.store.get().folders)


class TestNavigator:

    def test_documents_path(self):
        assert build_documents_path(None) == "/documents"
        assert build_documents_path("a b/c") == "/documents/a%20b/c"

    def test_push_and_replace(self):
        nav = Navigator()
        nav.push("a")
        nav.replace(None)
        assert nav.selected_id is None
        assert nav.history == ["/documents", "/documents"]


class TestLoading:

    @pytest.mark.asyncio
    async def test_load_builds_tree(self, backend, config):
        log_queue = MagicMock()
        explorer = await _loaded(backend, config, log_queue=log_queue)
        assert [n.name for n in explorer.tree] == ["Alpha", "Beta", "notes", "archive"]
        assert explorer.is_loading is False
        assert explorer.load_error is None
        assert log_queue.push.call_args[0][0].data["event"] == "index_loaded"

    @pytest.mark.asyncio
    async def test_load_failure_sets_error(self, backend, config):
        backend.fail_next("fetch_index", NoteTreeNetworkError("Unable to load markdown files"))
        explorer = DocumentExplorer(backend, config=config)
        outcome = await explorer.load_index()
        assert not outcome.ok
        assert explorer.load_error == "Unable to load markdown files"
        assert explorer.is_loading is False

    @pytest.mark.asyncio
    async def test_silent_failure_leaves_error_state(self, backend, config):
        explorer = await _loaded(backend, config)
        backend.fail_next("fetch_index")
        outcome = await explorer.refresh()
        assert not outcome.ok
        assert explorer.load_error is None
        assert len(explorer.store.get().documents) == 4

    @pytest.mark.asyncio
    async def test_newer_load_supersedes_older(self, documents, folders, config):
        backend = InMemoryDocumentBackend(documents=documents, folders=folders, latency=0.05)
        explorer = DocumentExplorer(backend, config=config)
        first = asyncio.ensure_future(explorer.load_index())
        await asyncio.sleep(0)
        second = await explorer.load_index()
        first_outcome = await first
        assert second.ok
        assert first_outcome.skipped
        assert first_outcome.reason == "superseded"
        assert explorer.is_loading is False

    @pytest.mark.asyncio
    async def test_mutations_use_process_audit_queue(self, backend, config, tmp_path):
        queue = init_logging(LoggingConfig(directory=str(tmp_path / "audit")))
        explorer = await _loaded(backend, config)
        assert explorer.log_queue is queue
        await explorer.delete_document("a")
        shutdown_logging()
        entries = queue.file_logger.read("documents", "execution")
        assert [e["event"] for e in entries] == ["document_delete"]

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self, backend, config):
        explorer = await _loaded(backend, config)
        explorer.close()
        explorer.store.set(explorer.store.get().with_records("document", []))
        assert len(explorer.tree) == 4


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_document_in_folder(self, backend, config):
        explorer = await _loaded(backend, config)
        outcome = await explorer.create_document("New Note", "notes")
        assert outcome.ok
        created = outcome.value
        assert created.path == "notes/New-Note.md"
        assert explorer.selected_id == created.id
        assert "documents-root/notes" in explorer.open_folders
        assert explorer.notices.messages("success") == ["Created New Note"]
        assert created.id in _document_ids(explorer)

    @pytest.mark.asyncio
    async def test_create_document_default_title(self, backend, config):
        explorer = await _loaded(backend, config)
        outcome = await explorer.create_document()
        assert outcome.value.title == "untitled"
        assert backend.calls_of("create_document")[0]["folder_path"] is None

    @pytest.mark.asyncio
    async def test_blank_title_rejected_without_network(self, backend, config):
        explorer = await _loaded(backend, config)
        outcome = await explorer.create_document("   ")
        assert isinstance(outcome.error, NoteTreeValidationError)
        assert backend.call_count("create_document") == 0
        assert explorer.notices.messages("error") == ["Title must not be empty"]

    @pytest.mark.asyncio
    async def test_create_failure_leaves_cache(self, backend, config):
        explorer = await _loaded(backend, config)
        before = explorer.store.get()
        outcome = await explorer.create_document("Missing", "nowhere")
        assert not outcome.ok
        assert explorer.store.get() == before
        assert explorer.notices.messages("error") == ["Folder does not exist"]

    @pytest.mark.asyncio
    async def test_create_folder(self, backend, config):
        explorer = await _loaded(backend, config)
        outcome = await explorer.create_folder("notes", "My Ideas")
        assert outcome.ok
        assert outcome.value.path == "notes/My-Ideas"
        assert "notes/My-Ideas" in _folder_paths(explorer)
        assert "documents-root/notes/My-Ideas" in explorer.open_folders

    @pytest.mark.asyncio
    async def test_create_folder_invalid_name(self, backend, config):
        explorer = await _loaded(backend, config)
        outcome = await explorer.create_folder(None, "!!!")
        assert isinstance(outcome.error, NoteTreeValidationError)
        assert backend.call_count("create_folder") == 0

    def test_trailing_sort_order(self, index):
        assert trailing_sort_order(index, "", 1000) == 5000
        assert trailing_sort_order(index, "notes/sub", 1000) == 2000
        assert trailing_sort_order(index, "archive", 1000) == 0


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_folder_cascades_and_navigates_away(self, backend, config):
        explorer = await _loaded(backend, config, navigator=Navigator("d"))
        outcome = await explorer.delete_folder("notes")
        assert outcome.ok
        assert _document_ids(explorer) == ["a", "b"]
        assert _folder_paths(explorer) == ["archive"]
        assert explorer.selected_id is None
        assert explorer.navigator.location == "/documents"
        assert backend.calls_of("delete_folder") == [{"path": "notes"}]

    @pytest.mark.asyncio
    async def test_delete_folder_failure_restores_everything(self, backend, config):
        explorer = await _loaded(backend, config, navigator=Navigator("e"))
        before = explorer.store.get()
        backend.fail_next("delete_folder")
        outcome = await explorer.delete_folder("notes")
        assert not outcome.ok
        assert explorer.store.get() == before
        assert explorer.selected_id == "e"
        assert explorer.notices.messages("error") == ["delete_folder failed"]

    @pytest.mark.asyncio
    async def test_delete_document_keeps_unrelated_selection(self, backend, config):
        explorer = await _loaded(backend, config, navigator=Navigator("b"))
        await explorer.delete_document("a")
        assert _document_ids(explorer) == ["b", "d", "e"]
        assert explorer.selected_id == "b"

    @pytest.mark.asyncio
    async def test_delete_document_failure_restores_position(self, backend, config):
        explorer = await _loaded(backend, config)
        before = [d.id for d in explorer.store.get().documents]
        backend.fail_next("delete_document")
        await explorer.delete_document(before[1])
        assert [d.id for d in explorer.store.get().documents] == before

    @pytest.mark.asyncio
    async def test_pending_action_gate(self, documents, folders, config):
        backend = InMemoryDocumentBackend(documents=documents, folders=folders, latency=0.02)
        explorer = await _loaded(backend, config)
        first = asyncio.ensure_future(explorer.delete_document("a"))
        await asyncio.sleep(0)
        assert explorer.is_action_pending
        second = await explorer.delete_document("b")
        assert second.skipped
        assert (await first).ok
        assert backend.call_count("delete_document") == 1
        assert not explorer.is_action_pending

    @pytest.mark.asyncio
    async def test_empty_folder_path_rejected(self, backend, config):
        explorer = await _loaded(backend, config)
        outcome = await explorer.delete_folder("/")
        assert isinstance(outcome.error, NoteTreeValidationError)


class TestRename:

    @pytest.mark.asyncio
    async def test_rename_document(self, backend, config):
        explorer = await _loaded(backend, config, navigator=Navigator("a"))
        outcome = await explorer.rename_document("a", "  Renamed  ")
        assert outcome.ok
        document = explorer.store.get().find_document("a")
        assert document.title == "Renamed"
        assert document.path == "Renamed.md"
        assert explorer.navigator.location == "/documents/a"
        assert explorer.notices.messages("success") == ['Renamed document to "Renamed"']

    @pytest.mark.asyncio
    async def test_rename_unchanged_is_skipped(self, backend, config):
        explorer = await _loaded(backend, config)
        outcome = await explorer.rename_document("a", "Alpha")
        assert outcome.skipped
        assert backend.call_count("rename_document") == 0

    @pytest.mark.asyncio
    async def test_rename_conflict_rolls_back(self, backend, config):
        explorer = await _loaded(backend, config)
        backend.fail_next("rename_document", NoteTreeConflictError("A document with that title already exists"))
        outcome = await explorer.rename_document("a", "Beta")
        assert not outcome.ok
        assert explorer.store.get().find_document("a").title == "Alpha"
        assert explorer.notices.messages("error") == ["A document with that title already exists"]

    @pytest.mark.asyncio
    async def test_rename_folder_rebases_descendants(self, backend, config):
        explorer = await _loaded(backend, config)
        explorer.open_folder_path("notes/sub")
        outcome = await explorer.rename_folder("notes", "Journal")
        assert outcome.ok
        assert _folder_paths(explorer) == ["Journal", "Journal/sub", "archive"]
        assert explorer.store.get().find_document("e").path == "Journal/sub/e.md"
        assert {"documents-root/Journal", "documents-root/Journal/sub"} <= explorer.open_folders

    @pytest.mark.asyncio
    async def test_rename_folder_failure_restores_paths(self, backend, config):
        explorer = await _loaded(backend, config)
        before = explorer.store.get()
        backend.fail_next("rename_folder")
        outcome = await explorer.rename_folder("notes", "Journal")
        assert not outcome.ok
        assert explorer.store.get() == before

    @pytest.mark.asyncio
    async def test_rename_folder_same_name_skipped(self, backend, config):
        explorer = await _loaded(backend, config)
        assert (await explorer.rename_folder("notes", "notes")).skipped


class TestMoveAndOrder:

    @pytest.mark.asyncio
    async def test_move_document_to_root(self, backend, config):
        explorer = await _loaded(backend, config)
        outcome = await explorer.move_document("d", None, 5000)
        assert outcome.ok
        moved = explorer.store.get().find_document("d")
        assert moved.path == "d.md"
        assert moved.sort_order == 5000
        assert explorer.notices.messages("success") == ['Moved "Draft"']

    @pytest.mark.asyncio
    async def test_move_failure_reloads(self, backend, config):
        explorer = await _loaded(backend, config)
        loads = backend.call_count("fetch_index")
        backend.fail_next("move_document")
        outcome = await explorer.move_document("d", "archive", 0)
        assert not outcome.ok
        assert backend.call_count("fetch_index") == loads + 1
        assert explorer.store.get().find_document("d").path == "notes/d.md"

    @pytest.mark.asyncio
    async def test_update_sort_order_failure_is_reported(self, backend, config):
        log_queue = MagicMock()
        explorer = await _loaded(backend, config, log_queue=log_queue)
        outcome = await explorer.update_sort_order("missing", "document", 1000)
        assert not outcome.ok
        assert explorer.notices.messages("error") == ["Document not found"]
        entry = log_queue.push.call_args[0][0]
        assert entry.object_type == "ordering"
        assert entry.category == "errors"

    @pytest.mark.asyncio
    async def test_open_folders_follow_selection(self, backend, config):
        explorer = await _loaded(backend, config, navigator=Navigator("e"))
        assert explorer.open_folders == {"documents-root/notes", "documents-root/notes/sub"}
        explorer.toggle_folder("documents-root/archive")
        assert "documents-root/archive" in explorer.open_folders
        explorer.toggle_folder("documents-root/archive")
        assert "documents-root/archive" not in explorer.open_folders
