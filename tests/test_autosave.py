"""Unit tests for notetree.sync.autosave — debounced content saves."""

import asyncio
from unittest.mock import MagicMock

import pytest

from notetree.documents.memory import InMemoryDocumentBackend
from notetree.sync.autosave import AutosaveSession, AutosaveState
from notetree.sync.notices import NoticeBoard

DEBOUNCE_MS = 20
SETTLE = 0.1


def _saved_contents(backend):
    return [c["content"] for c in backend.calls_of("save_content")]


class TestDebounce:

    @pytest.mark.asyncio
    async def test_burst_of_edits_saves_once(self, backend):
        session = AutosaveSession(backend, "a", "", debounce_ms=DEBOUNCE_MS)
        for text in ("h", "he", "hel", "hello"):
            session.change(text)
            await asyncio.sleep(0.005)
        assert session.state is AutosaveState.DIRTY
        await asyncio.sleep(SETTLE)
        assert _saved_contents(backend) == ["hello"]
        assert backend.content_of("a") == "hello"
        assert session.state is AutosaveState.SAVED
        assert not session.has_unsaved_changes

    @pytest.mark.asyncio
    async def test_revert_to_saved_cancels(self, backend):
        session = AutosaveSession(backend, "a", "original", debounce_ms=DEBOUNCE_MS)
        session.change("original plus")
        session.change("original")
        assert session.state is AutosaveState.IDLE
        await asyncio.sleep(SETTLE)
        assert backend.call_count("save_content") == 0

    @pytest.mark.asyncio
    async def test_revert_after_a_save_returns_to_saved(self, backend):
        session = AutosaveSession(backend, "a", "", debounce_ms=DEBOUNCE_MS)
        session.change("v1")
        await asyncio.sleep(SETTLE)
        session.change("v2")
        session.change("v1")
        assert session.state is AutosaveState.SAVED
        await asyncio.sleep(SETTLE)
        assert _saved_contents(backend) == ["v1"]

    @pytest.mark.asyncio
    async def test_edits_during_save_trigger_another(self, documents):
        backend = InMemoryDocumentBackend(documents=documents, latency=0.05)
        session = AutosaveSession(backend, "a", "", debounce_ms=DEBOUNCE_MS)
        session.change("one")
        await asyncio.sleep(0.03)
        assert session.state is AutosaveState.SAVING
        session.change("two")
        assert session.state is AutosaveState.SAVING
        await asyncio.sleep(0.25)
        assert _saved_contents(backend) == ["one", "two"]
        assert session.state is AutosaveState.SAVED

    @pytest.mark.asyncio
    async def test_never_two_saves_in_flight(self, documents):
        backend = InMemoryDocumentBackend(documents=documents, latency=0.05)
        in_flight = []
        peak = []
        original = backend.save_content

        async def tracking(document_id, content):
            in_flight.append(content)
            peak.append(len(in_flight))
            try:
                await original(document_id, content)
            finally:
                in_flight.remove(content)

        backend.save_content = tracking
        session = AutosaveSession(backend, "a", "", debounce_ms=5)
        for i in range(5):
            session.change(f"v{i}")
            await asyncio.sleep(0.02)
        await asyncio.sleep(0.3)
        assert max(peak) == 1
        assert backend.content_of("a") == "v4"

    @pytest.mark.asyncio
    async def test_flush_saves_immediately(self, backend):
        session = AutosaveSession(backend, "a", "", debounce_ms=10_000)
        session.change("now")
        assert await session.flush() is True
        assert _saved_contents(backend) == ["now"]

    def test_debounce_defaults_to_config(self, backend):
        assert AutosaveSession(backend, "a").debounce_ms == 1000


class TestFailures:

    @pytest.mark.asyncio
    async def test_failure_goes_dirty_without_retry(self, backend):
        notices = NoticeBoard()
        session = AutosaveSession(backend, "a", "", debounce_ms=DEBOUNCE_MS, notices=notices)
        states = []
        session.subscribe(lambda previous, current: states.append(current))
        backend.fail_next("save_content")

        session.change("lost?")
        await asyncio.sleep(SETTLE)

        assert session.state is AutosaveState.DIRTY
        assert AutosaveState.ERROR in states
        assert session.last_error == "save_content failed"
        assert notices.messages("error") == ["save_content failed"]
        await asyncio.sleep(SETTLE)
        assert backend.call_count("save_content") == 1

        session.change("lost? no")
        await asyncio.sleep(SETTLE)
        assert backend.content_of("a") == "lost? no"
        assert session.state is AutosaveState.SAVED
        assert session.last_error is None

    @pytest.mark.asyncio
    async def test_flush_after_failure_writes_kept_content(self, backend):
        session = AutosaveSession(backend, "a", "", debounce_ms=DEBOUNCE_MS)
        backend.fail_next("save_content")
        session.change("keep me")
        await asyncio.sleep(SETTLE)
        assert session.has_unsaved_changes
        assert backend.call_count("save_content") == 1

        assert await session.flush() is True
        assert backend.content_of("a") == "keep me"
        assert session.state is AutosaveState.SAVED

    @pytest.mark.asyncio
    async def test_transitions_are_logged(self, backend):
        log_queue = MagicMock()
        session = AutosaveSession(backend, "a", "", debounce_ms=DEBOUNCE_MS, log_queue=log_queue)
        session.change("x")
        await asyncio.sleep(SETTLE)
        transitions = [
            (call[0][0].data["from_state"], call[0][0].data["to_state"]) for call in log_queue.push.call_args_list
        ]
        assert transitions == [("idle", "dirty"), ("dirty", "saving"), ("saving", "saved")]


class TestUnmount:

    @pytest.mark.asyncio
    async def test_unmount_mid_pause_saves_once(self, backend):
        session = AutosaveSession(backend, "a", "", debounce_ms=10_000)
        session.change("typed")
        session.change("typed more")
        assert await session.unmount() is True
        assert _saved_contents(backend) == ["typed more"]
        await asyncio.sleep(SETTLE)
        assert backend.call_count("save_content") == 1

    @pytest.mark.asyncio
    async def test_unmount_waits_for_running_save(self, documents):
        backend = InMemoryDocumentBackend(documents=documents, latency=0.05)
        session = AutosaveSession(backend, "a", "", debounce_ms=DEBOUNCE_MS)
        session.change("first")
        await asyncio.sleep(0.03)
        assert session.is_saving
        session.change("second")
        await session.unmount()
        assert _saved_contents(backend) == ["first", "second"]

    @pytest.mark.asyncio
    async def test_unmount_nothing_pending(self, backend):
        session = AutosaveSession(backend, "a", "same", debounce_ms=DEBOUNCE_MS)
        assert await session.unmount() is True
        assert backend.call_count("save_content") == 0

    @pytest.mark.asyncio
    async def test_unmount_failure_is_swallowed(self, backend):
        notices = NoticeBoard()
        session = AutosaveSession(backend, "a", "", debounce_ms=10_000, notices=notices)
        session.change("unsaved")
        backend.fail_next("save_content")
        assert await session.unmount() is False
        assert notices.notices == []
        assert session.last_error is None
        assert session.state is AutosaveState.DIRTY

    @pytest.mark.asyncio
    async def test_edits_after_unmount_ignored(self, backend):
        session = AutosaveSession(backend, "a", "", debounce_ms=DEBOUNCE_MS)
        await session.unmount()
        session.change("late")
        await asyncio.sleep(SETTLE)
        assert backend.call_count("save_content") == 0
