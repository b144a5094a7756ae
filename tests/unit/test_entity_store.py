"""
Unit tests for EntityStore.

Tests cover:
- Record CRUD by numeric key
- Free key search and key overflow
- Export / import documents
"""

import io
import json
from typing import ClassVar

import pytest

from craft.appdata_server.entity import KEY_MAX, Entity, EntityStore, decode_key, encode_key
from craft.appdata_server.errors import DecodingError, InvalidKeyError, KeyOverflowError, StoreError
from craft.appdata_server.samples import UserProfile
from craft.appdata_server.storage import KvStore


class Note(Entity):
    store_name: ClassVar[str] = "Note"

    id: int
    text: str


def make_profile(id: int, name: str = "Ada") -> UserProfile:
    return UserProfile(id=id, name=name, email=f"{name.lower()}@example.com", age=36, is_active=True)


@pytest.fixture
def profiles(kv):
    return EntityStore(UserProfile, kv)


class TestKeys:
    """Tests for key encoding."""

    def test_encode_is_big_endian(self):
        """Keys encode as 4 big-endian bytes."""
        assert encode_key(1) == b"\x00\x00\x00\x01"
        assert encode_key(KEY_MAX) == b"\xff\xff\xff\xff"
        assert decode_key(b"\x00\x00\x01\x00") == 256

    def test_out_of_range_rejected(self):
        """Negative and too large keys raise InvalidKeyError."""
        with pytest.raises(InvalidKeyError):
            encode_key(-1)
        with pytest.raises(InvalidKeyError):
            encode_key(KEY_MAX + 1)

    def test_bool_rejected(self):
        """Booleans are not keys."""
        with pytest.raises(InvalidKeyError):
            encode_key(True)

    def test_entity_without_key_field_rejected(self):
        """Declaring a store_name without a key field is a type error."""
        with pytest.raises(TypeError, match="key_field"):

            class Broken(Entity):
                store_name: ClassVar[str] = "Broken"

                name: str


class TestEntityStoreCrud:
    """Tests for get/save/remove/exists."""

    def test_save_and_get(self, profiles):
        """Saved record is returned by get."""
        profile = make_profile(7)

        profiles.save(profile)

        assert profiles.get(7) == profile

    def test_get_missing_returns_none(self, profiles):
        """Absent key returns None."""
        assert profiles.get(7) is None

    def test_exists_tracks_save_and_remove(self, profiles):
        """exists() follows save() and remove()."""
        assert profiles.exists(7) is False

        profiles.save(make_profile(7))
        assert profiles.exists(7) is True

        profiles.remove(7)
        assert profiles.exists(7) is False

    def test_remove_missing_is_ok(self, profiles):
        """Removing an absent key is not an error."""
        profiles.remove(99)

    def test_save_replaces(self, profiles):
        """Second save under the same key replaces the record."""
        profiles.save(make_profile(7, "Ada"))
        profiles.save(make_profile(7, "Grace"))

        assert profiles.get(7).name == "Grace"
        assert profiles.count() == 1

    def test_types_do_not_collide(self, kv, profiles):
        """Two types can use the same key independently."""
        notes = EntityStore(Note, kv)

        profiles.save(make_profile(1))
        notes.save(Note(id=1, text="hello"))
        profiles.remove(1)

        assert notes.get(1) == Note(id=1, text="hello")

    def test_save_wrong_type_raises(self, profiles):
        """A store only saves its own type."""
        with pytest.raises(TypeError):
            profiles.save(Note(id=1, text="x"))

    def test_list_keys_numeric_order(self, profiles):
        """list_keys() is ascending by number."""
        for key in (300, 2, 256):
            profiles.save(make_profile(key))

        assert profiles.list_keys() == [2, 256, 300]

    def test_corrupt_record_raises_store_error(self, kv, profiles):
        """Undecodable stored bytes surface as StoreError."""
        kv.put("UserProfile", encode_key(3), b'{"id": 3}')

        with pytest.raises(StoreError, match="Corrupt"):
            profiles.get(3)

    def test_survives_reopen(self, data_dir):
        """Records are durable across store instances."""
        first = KvStore(data_dir)
        EntityStore(UserProfile, first).save(make_profile(5))
        first.close()

        second = KvStore(data_dir)
        assert EntityStore(UserProfile, second).get(5) == make_profile(5)
        second.close()


class TestFindNextAvailableKey:
    """Tests for free key search."""

    def test_empty_store_returns_start(self, profiles):
        """With nothing stored, start is free."""
        assert profiles.find_next_available_key() == 0
        assert profiles.find_next_available_key(42) == 42

    def test_skips_used_keys(self, profiles):
        """0 used -> 1; 0 removed -> 0 again."""
        profiles.save(make_profile(0))
        assert profiles.find_next_available_key(0) == 1

        profiles.save(make_profile(1))
        assert profiles.find_next_available_key(0) == 2

        profiles.remove(0)
        assert profiles.find_next_available_key(0) == 0

    def test_overflow_at_key_max(self, profiles):
        """Key space exhausted from start raises KeyOverflowError."""
        profiles.save(make_profile(KEY_MAX))

        with pytest.raises(KeyOverflowError, match="Key overflow"):
            profiles.find_next_available_key(KEY_MAX)

    def test_key_max_free(self, profiles):
        """KEY_MAX itself can be returned."""
        profiles.save(make_profile(KEY_MAX - 1))

        assert profiles.find_next_available_key(KEY_MAX - 1) == KEY_MAX

    def test_invalid_start(self, profiles):
        """Negative start raises InvalidKeyError."""
        with pytest.raises(InvalidKeyError):
            profiles.find_next_available_key(-1)


class TestExportImport:
    """Tests for export/import documents."""

    def test_export_document(self, profiles):
        """Export writes store_name, version and records in key order."""
        profiles.save(make_profile(2, "Grace"))
        profiles.save(make_profile(1, "Ada"))

        sink = io.StringIO()
        assert profiles.export(sink) == 2

        document = json.loads(sink.getvalue())
        assert document["store_name"] == "UserProfile"
        assert document["version"] == 1
        assert [r["id"] for r in document["records"]] == [1, 2]
        assert document["records"][0]["is_active"] is True

    def test_export_to_binary_sink(self, profiles):
        """Binary sinks receive UTF-8 bytes."""
        profiles.save(make_profile(1))

        sink = io.BytesIO()
        profiles.export(sink)

        assert json.loads(sink.getvalue().decode("utf-8"))["records"][0]["id"] == 1

    def test_export_import_into_fresh_store(self, profiles, tmp_path):
        """Importing an export into an empty store reproduces the records."""
        for key in (1, 5, 9):
            profiles.save(make_profile(key, f"User{key}"))
        sink = io.BytesIO()
        profiles.export(sink)

        fresh_kv = KvStore(tmp_path, wal_mode=False)
        fresh = EntityStore(UserProfile, fresh_kv)
        assert fresh.import_(io.BytesIO(sink.getvalue())) == 3

        assert fresh.list_keys() == [1, 5, 9]
        for key in (1, 5, 9):
            assert fresh.get(key) == profiles.get(key)
        fresh_kv.close()

    def test_import_merges_with_existing(self, profiles):
        """Import overwrites given keys and leaves the rest alone."""
        profiles.save(make_profile(1, "Ada"))
        profiles.save(make_profile(2, "Grace"))
        document = {
            "store_name": "UserProfile",
            "version": 1,
            "records": [json.loads(make_profile(2, "Linus").model_dump_json())],
        }

        profiles.import_(io.StringIO(json.dumps(document)))

        assert profiles.get(1).name == "Ada"
        assert profiles.get(2).name == "Linus"

    def test_import_last_duplicate_wins(self, profiles):
        """Duplicate keys in a document: the last one wins."""
        document = {
            "store_name": "UserProfile",
            "version": 1,
            "records": [
                json.loads(make_profile(3, "First").model_dump_json()),
                json.loads(make_profile(3, "Second").model_dump_json()),
            ],
        }

        assert profiles.import_(io.StringIO(json.dumps(document))) == 1
        assert profiles.get(3).name == "Second"

    def test_import_wrong_store_name(self, profiles):
        """A document for another type is rejected."""
        document = {"store_name": "Note", "version": 1, "records": []}

        with pytest.raises(DecodingError, match="expected 'UserProfile'"):
            profiles.import_(io.StringIO(json.dumps(document)))

    def test_import_not_json(self, profiles):
        """Garbage input is a DecodingError."""
        with pytest.raises(DecodingError):
            profiles.import_(io.StringIO("not json"))

    def test_import_invalid_record_writes_nothing(self, profiles):
        """One invalid record aborts the import before any write."""
        profiles.save(make_profile(1, "Ada"))
        document = {
            "store_name": "UserProfile",
            "version": 1,
            "records": [
                json.loads(make_profile(1, "Changed").model_dump_json()),
                {"id": 2, "name": "Missing fields"},
            ],
        }

        with pytest.raises(DecodingError, match="#1"):
            profiles.import_(io.StringIO(json.dumps(document)))

        assert profiles.get(1).name == "Ada"
        assert profiles.exists(2) is False
