"""Tests for call records and the call store."""

import json
from dataclasses import replace
import tempfile
import pytest
from pathlib import Path
from unittest.mock import patch

from dialai.core.generator import DEFAULT_KNOWLEDGE_BASE, KnowledgeBase
from dialai.state.call_store import CallStore
from dialai.state.knowledge_store import KnowledgeBaseStore
from dialai.state.models import Call, CallStatus, Message, MessageRole


class TestCall:
    """Test cases for the Call record."""

    def test_new_call_defaults(self):
        call = Call(id="c1", assistant_name="Emma")

        assert call.status is CallStatus.SCHEDULED
        assert call.end_time is None
        assert call.messages == []
        assert not call.is_terminal

    def test_message_ids_are_unique(self):
        call = Call(id="c1", assistant_name="Emma")
        for i in range(20):
            call.append_message(MessageRole.USER, f"message {i}")

        assert len({m.id for m in call.messages}) == 20

    def test_timestamps_never_decrease(self):
        """A clock step backwards does not reorder the transcript."""
        call = Call(id="c1", assistant_name="Emma", start_time=500)

        with patch("dialai.state.models.now_ms", side_effect=[1000, 900, 1200]):
            call.append_message(MessageRole.ASSISTANT, "Hello", "Emma")
            call.append_message(MessageRole.USER, "Hi")
            call.append_message(MessageRole.ASSISTANT, "Great", "Emma")

        assert [m.timestamp for m in call.messages] == [1000, 1000, 1200]

    def test_finish_sets_end_time_once(self):
        call = Call(id="c1", assistant_name="Emma", status=CallStatus.ACTIVE)
        call.finish(CallStatus.COMPLETED, summary="done")

        assert call.is_terminal
        assert call.end_time is not None
        assert call.end_time >= call.start_time
        assert call.summary == "done"

        with pytest.raises(ValueError):
            call.finish(CallStatus.FAILED)
        assert call.status is CallStatus.COMPLETED

    def test_finish_requires_terminal_status(self):
        call = Call(id="c1", assistant_name="Emma")

        with pytest.raises(ValueError):
            call.finish(CallStatus.ACTIVE)

    def test_no_appends_after_terminal(self):
        call = Call(id="c1", assistant_name="Emma", status=CallStatus.ACTIVE)
        call.append_message(MessageRole.ASSISTANT, "Hello", "Emma")
        call.finish(CallStatus.FAILED)

        with pytest.raises(ValueError):
            call.append_message(MessageRole.USER, "Wait")
        assert len(call.messages) == 1

    def test_serialization_uses_stored_field_names(self):
        call = Call(
            id="c1",
            assistant_name="Emma",
            status=CallStatus.ACTIVE,
            start_time=1700000000000,
            knowledge_base_id="default",
        )
        call.append_message(MessageRole.ASSISTANT, "Hello", "Emma")
        call.finish(CallStatus.COMPLETED, summary='{"summary": "ok"}')

        data = call.to_dict()

        assert data["assistantName"] == "Emma"
        assert data["startTime"] == 1700000000000
        assert "endTime" in data
        assert data["knowledgeBaseId"] == "default"
        assert data["messages"][0]["agentName"] == "Emma"
        assert data["messages"][0]["role"] == "assistant"

        restored = Call.from_dict(json.loads(json.dumps(data)))
        assert restored == call

    def test_user_message_has_no_agent_name(self):
        message = Message(id="m1", role=MessageRole.USER, content="Hi", timestamp=1)

        assert "agentName" not in message.to_dict()
        assert Message.from_dict(message.to_dict()) == message


class TestCallStore:
    """Test cases for CallStore persistence."""

    def test_missing_file_loads_empty(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = CallStore(Path(tmp_dir) / "calls.json")
            assert store.load() == {}

    def test_save_and_load(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = CallStore(Path(tmp_dir) / "nested" / "calls.json")

            call = Call(id="c1", assistant_name="Grace", status=CallStatus.ACTIVE)
            call.append_message(MessageRole.ASSISTANT, "Hello", "Grace")
            call.append_message(MessageRole.USER, "Hi there")
            store.save({call.id: call})

            loaded = store.load()

            assert list(loaded) == ["c1"]
            assert loaded["c1"] == call

    def test_save_leaves_no_temp_files(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = CallStore(Path(tmp_dir) / "calls.json")
            store.save({"c1": Call(id="c1", assistant_name="Grace")})
            store.save({"c2": Call(id="c2", assistant_name="Lisa")})

            assert [p.name for p in Path(tmp_dir).iterdir()] == ["calls.json"]
            assert list(store.load()) == ["c2"]

    def test_corrupt_file_loads_empty(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "calls.json"
            path.write_text("{not json")

            assert CallStore(path).load() == {}

    def test_malformed_record_loads_empty(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "calls.json"
            path.write_text(json.dumps({"c1": {"id": "c1", "status": "bogus"}}))

            assert CallStore(path).load() == {}

    def test_clear(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "calls.json"
            store = CallStore(path)
            store.save({"c1": Call(id="c1", assistant_name="Grace")})

            store.clear()
            store.clear()

            assert not path.exists()
            assert store.load() == {}

    def test_save_failure_is_raised(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = CallStore(Path(tmp_dir) / "calls.json")

            with patch("dialai.state.call_store.os.replace", side_effect=OSError("read-only")):
                with pytest.raises(OSError):
                    store.save({"c1": Call(id="c1", assistant_name="Grace")})


class TestKnowledgeBaseStore:
    """Test cases for persisted knowledge bases."""

    def test_save_and_load_custom_knowledge_bases(self, tmp_path):
        store = KnowledgeBaseStore(tmp_path / "kb.json")
        solar = KnowledgeBase(
            id="abcd1234", name="Solar", description="Panels",
            content="Product: SunRoof", prompt="You sell solar.",
        )

        store.save([DEFAULT_KNOWLEDGE_BASE, solar])

        assert json.loads((tmp_path / "kb.json").read_text())[0]["id"] == "abcd1234"
        assert store.load() == [solar]

    def test_edited_default_is_stored(self, tmp_path):
        store = KnowledgeBaseStore(tmp_path / "kb.json")
        edited = replace(DEFAULT_KNOWLEDGE_BASE, content="Product: DialAI v2")

        store.save([edited])

        assert store.load() == [edited]

    def test_missing_or_corrupt_file_loads_nothing(self, tmp_path):
        path = tmp_path / "kb.json"
        assert KnowledgeBaseStore(path).load() == []

        path.write_text('[{"id": "x"}]')
        assert KnowledgeBaseStore(path).load() == []
