import json
import os
from unittest.mock import patch

import pytest
from cryptography.fernet import Fernet

from tagsync.keywords import EncryptedFileKeywordStore, MemoryKeywordStore, StorageError
from tagsync.models import KeywordSet


def test_load_returns_none_when_nothing_stored(tmp_path):
    store = EncryptedFileKeywordStore(tmp_path / "skills.enc", key=Fernet.generate_key())

    assert store.load() is None


def test_save_then_load(tmp_path):
    key = Fernet.generate_key()
    path = tmp_path / "skills.enc"

    EncryptedFileKeywordStore(path, key=key).save(KeywordSet(["python", "rust"]))

    # A fresh instance with the same key reads the same list back
    assert EncryptedFileKeywordStore(path, key=key).load() == ["python", "rust"]


def test_stored_file_is_encrypted(tmp_path):
    path = tmp_path / "skills.enc"
    store = EncryptedFileKeywordStore(path, key=Fernet.generate_key())
    store.save(KeywordSet(["secret-skill"]))

    assert b"secret-skill" not in path.read_bytes()


def test_wrong_key_raises_storage_error(tmp_path):
    path = tmp_path / "skills.enc"
    EncryptedFileKeywordStore(path, key=Fernet.generate_key()).save(KeywordSet(["go"]))

    with pytest.raises(StorageError):
        EncryptedFileKeywordStore(path, key=Fernet.generate_key()).load()


def test_invalid_payload_raises_storage_error(tmp_path):
    key = Fernet.generate_key()
    path = tmp_path / "skills.enc"
    path.write_bytes(Fernet(key).encrypt(json.dumps({"skills": 1}).encode("utf-8")))

    with pytest.raises(StorageError):
        EncryptedFileKeywordStore(path, key=key).load()


def test_plain_list_payload_is_accepted(tmp_path):
    key = Fernet.generate_key()
    path = tmp_path / "skills.enc"
    path.write_bytes(Fernet(key).encrypt(json.dumps(["Go", "go", "rust"]).encode("utf-8")))

    assert EncryptedFileKeywordStore(path, key=key).load() == ["go", "rust"]


def test_key_file_is_generated_and_reused(tmp_path):
    path = tmp_path / "data" / "skills.enc"

    first = EncryptedFileKeywordStore(path)
    first.save(KeywordSet(["kotlin"]))

    key_file = tmp_path / "data" / "skills.enc.key"
    assert key_file.exists()
    if os.name == "posix":
        assert key_file.stat().st_mode & 0o777 == 0o600

    second = EncryptedFileKeywordStore(path)
    assert second.load() == ["kotlin"]


def test_failed_save_keeps_previous_value(tmp_path):
    key = Fernet.generate_key()
    path = tmp_path / "skills.enc"
    store = EncryptedFileKeywordStore(path, key=key)
    store.save(KeywordSet(["swift"]))

    with patch("tagsync.keywords.store.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(StorageError):
            store.save(KeywordSet(["swift", "go"]))

    assert store.load() == ["swift"]
    # No temporary file is left behind
    assert sorted(p.name for p in tmp_path.iterdir()) == ["skills.enc"]


def test_memory_store_can_fail_saves():
    store = MemoryKeywordStore()
    assert store.load() is None

    store.save(KeywordSet(["go"]))
    assert store.load() == ["go"]
    assert store.save_count == 1

    store.fail_saves = True
    with pytest.raises(StorageError):
        store.save(KeywordSet(["go", "rust"]))
    assert store.load() == ["go"]


def test_invalid_key_raises_storage_error(tmp_path):
    with pytest.raises(StorageError):
        EncryptedFileKeywordStore(tmp_path / "skills.enc", key="not-a-fernet-key")
