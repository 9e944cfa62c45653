# tests/test_database.py
from types import SimpleNamespace

import pytest
from unittest.mock import patch

from nexus_agent.memory.database import InMemoryDatabase, apply_event, create_database


@pytest.fixture
def db():
    return InMemoryDatabase()


class TestPaths:

    def test_set_and_get_nested(self, db):
        db.set("memories/m1", {"name": "FAQ"})

        assert db.get("memories/m1") == {"name": "FAQ"}
        assert db.get("memories") == {"m1": {"name": "FAQ"}}
        assert db.get("/memories/m1/name") == "FAQ"

    def test_missing_path_is_none(self, db):
        assert db.get("settings") is None
        assert db.get("settings/role") is None

    def test_set_none_deletes(self, db):
        db.set("settings", {"role": "Agent"})
        db.set("settings", None)

        assert db.get("settings") is None

    def test_delete_prunes_empty_parents(self, db):
        db.set("api_keys/k1", {"key": "x"})
        db.delete("api_keys/k1")

        assert db.get("api_keys") is None
        assert db.get("") == {}

    def test_delete_unknown_is_noop(self, db):
        db.set("memories/m1", {"name": "a"})
        db.delete("memories/missing")

        assert db.get("memories") == {"m1": {"name": "a"}}

    def test_update_merges_children(self, db):
        db.set("settings", {"role": "Agent", "tone": "Calm", "language": "English"})
        db.update("settings", {"tone": "Cheerful"})

        assert db.get("settings") == {"role": "Agent", "tone": "Cheerful", "language": "English"}

    def test_values_are_copied(self, db):
        record = {"name": "a"}
        db.set("memories/m1", record)
        record["name"] = "changed"

        snapshot = db.get("memories/m1")
        snapshot["name"] = "also changed"

        assert db.get("memories/m1") == {"name": "a"}


class TestPush:

    def test_push_returns_unique_ordered_keys(self, db):
        keys = [db.push("api_keys", {"n": i}) for i in range(20)]

        assert len(set(keys)) == 20
        assert keys == sorted(keys)
        assert db.get(f"api_keys/{keys[5]}") == {"n": 5}


class TestListen:

    def test_initial_snapshot_and_changes(self, db):
        seen = []
        db.listen("memories", seen.append)

        db.set("memories/m1", {"name": "a"})
        db.delete("memories/m1")

        assert seen == [None, {"m1": {"name": "a"}}, None]

    def test_unrelated_paths_do_not_fire(self, db):
        seen = []
        db.listen("memories", seen.append)

        db.set("settings", {"role": "Agent"})

        assert seen == [None]

    def test_parent_write_fires_child_listener(self, db):
        seen = []
        db.listen("settings/role", seen.append)

        db.set("settings", {"role": "Agent"})

        assert seen == [None, "Agent"]

    def test_close_stops_events(self, db):
        seen = []
        listener = db.listen("memories", seen.append)
        listener.close()

        db.set("memories/m1", {"name": "a"})

        assert seen == [None]


class TestApplyEvent:
    """Streaming events folded into a local snapshot."""

    def test_root_put_replaces_snapshot(self):
        assert apply_event({"old": 1}, "put", "/", {"m1": {"name": "a"}}) == {"m1": {"name": "a"}}

    def test_child_put(self):
        snapshot = {"m1": {"name": "a"}}

        result = apply_event(snapshot, "put", "/m2", {"name": "b"})

        assert result == {"m1": {"name": "a"}, "m2": {"name": "b"}}

    def test_nested_put_into_empty_node(self):
        assert apply_event(None, "put", "/m1/name", "a") == {"m1": {"name": "a"}}

    def test_put_none_deletes_child(self):
        result = apply_event({"m1": {"name": "a"}, "m2": {"name": "b"}}, "put", "/m1", None)

        assert result == {"m2": {"name": "b"}}

    def test_deleting_last_child_empties_node(self):
        assert apply_event({"m1": {"name": "a"}}, "put", "/m1", None) is None

    def test_patch_merges_children(self):
        snapshot = {"role": "Agent", "tone": "Calm", "language": "English"}

        result = apply_event(snapshot, "patch", "/", {"tone": "Playful", "language": None})

        assert result == {"role": "Agent", "tone": "Playful"}


class TestFirebaseListener:

    @patch("nexus_agent.memory.database.db")
    @patch("nexus_agent.memory.database.firebase_admin")
    def test_events_applied_without_rereading(self, mock_firebase, mock_db):
        from nexus_agent.memory.database import FirebaseDatabase

        database = FirebaseDatabase(database_url="https://example.firebaseio.com")
        ref = mock_db.reference.return_value
        seen = []

        database.listen("memories", seen.append)
        on_event = ref.listen.call_args.args[0]

        on_event(SimpleNamespace(event_type="put", path="/", data={"m1": {"name": "a"}}))
        on_event(SimpleNamespace(event_type="put", path="/m2", data={"name": "b"}))
        on_event(SimpleNamespace(event_type="put", path="/m1", data=None))

        assert seen == [
            {"m1": {"name": "a"}},
            {"m1": {"name": "a"}, "m2": {"name": "b"}},
            {"m2": {"name": "b"}},
        ]
        ref.get.assert_not_called()

    @patch("nexus_agent.memory.database.db")
    @patch("nexus_agent.memory.database.firebase_admin")
    def test_callback_gets_a_copy(self, mock_firebase, mock_db):
        from nexus_agent.memory.database import FirebaseDatabase

        database = FirebaseDatabase(database_url="https://example.firebaseio.com")
        ref = mock_db.reference.return_value
        seen = []

        database.listen("settings", seen.append)
        on_event = ref.listen.call_args.args[0]

        on_event(SimpleNamespace(event_type="put", path="/", data={"role": "Agent"}))
        seen[0]["role"] = "changed"
        on_event(SimpleNamespace(event_type="patch", path="/", data={"tone": "Calm"}))

        assert seen[1] == {"role": "Agent", "tone": "Calm"}


class TestFactory:

    def test_memory_backend(self):
        assert create_database("memory").backend_name == "memory"

    def test_firebase_requires_url(self):
        from nexus_agent.memory.database import FirebaseDatabase

        with pytest.raises(ValueError, match="FIREBASE_DATABASE_URL"):
            FirebaseDatabase(database_url=None)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown database backend"):
            create_database("redis")
