import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from cryptography.fernet import Fernet, InvalidToken

from tagsync.keywords.errors import StorageError
from tagsync.models import KeywordSet

logger = logging.getLogger(__name__)


class KeywordStore:
    """
    Durable storage for the current user's keyword list.

    Implementations must replace the stored value atomically: a failed save
    never leaves a partially written list behind.
    """

    def load(self) -> Optional[KeywordSet]:
        raise NotImplementedError

    def save(self, keywords: KeywordSet) -> None:
        raise NotImplementedError


class MemoryKeywordStore(KeywordStore):
    """In-process store, used for tests and ephemeral sessions."""

    def __init__(self, keywords: Optional[List[str]] = None):
        self._keywords: Optional[List[str]] = (
            list(keywords) if keywords is not None else None
        )
        self.fail_saves = False
        self.save_count = 0

    def load(self) -> Optional[KeywordSet]:
        if self._keywords is None:
            return None
        return KeywordSet(self._keywords)

    def save(self, keywords: KeywordSet) -> None:
        if self.fail_saves:
            raise StorageError("Keyword store is not writable")
        self._keywords = list(keywords)
        self.save_count += 1


class EncryptedFileKeywordStore(KeywordStore):
    """
    Keyword store backed by a Fernet-encrypted JSON document on disk.

    The document has the shape ``{"keywords": [...]}``. Writes go to a sibling
    temporary file which is fsynced and then moved over the target with
    ``os.replace``.
    """

    def __init__(
        self,
        path: Union[str, Path],
        key: Optional[Union[str, bytes]] = None,
        key_file: Optional[Union[str, Path]] = None,
    ):
        self.path = Path(path)
        self.key_file = (
            Path(key_file) if key_file else self.path.with_name(f"{self.path.name}.key")
        )
        try:
            self._fernet = Fernet(self._resolve_key(key))
        except ValueError as e:
            raise StorageError(f"Invalid keyword store key: {e}", e)

    def _resolve_key(self, key: Optional[Union[str, bytes]]) -> bytes:
        """Use the given key, or read the key file, or generate a new key file."""
        if key:
            return key.encode("utf-8") if isinstance(key, str) else key

        try:
            if self.key_file.exists():
                return self.key_file.read_bytes().strip()

            self.key_file.parent.mkdir(parents=True, exist_ok=True)
            new_key = Fernet.generate_key()
            # Owner read/write only
            fd = os.open(self.key_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(new_key)
            logger.info(f"Generated new keyword store key at {self.key_file}")
            return new_key
        except OSError as e:
            raise StorageError(f"Unable to access key file {self.key_file}: {e}", e)

    def load(self) -> Optional[KeywordSet]:
        if not self.path.exists():
            logger.info(f"No keyword store found at {self.path}. Starting empty.")
            return None

        try:
            token = self.path.read_bytes()
            payload = json.loads(self._fernet.decrypt(token).decode("utf-8"))
        except InvalidToken as e:
            raise StorageError(
                f"Keyword store {self.path} could not be decrypted with the configured key",
                e,
            )
        except (OSError, ValueError) as e:
            raise StorageError(f"Error loading keywords from {self.path}: {e}", e)

        if isinstance(payload, list):
            keywords = payload
        elif isinstance(payload, dict) and isinstance(payload.get("keywords"), list):
            keywords = payload["keywords"]
        else:
            raise StorageError(f"Invalid keyword store format in {self.path}")

        result = KeywordSet(k for k in keywords if isinstance(k, str))
        logger.debug(f"Loaded {len(result)} keywords from {self.path}")
        return result

    def save(self, keywords: KeywordSet) -> None:
        payload = json.dumps({"keywords": list(keywords)}).encode("utf-8")
        token = self._fernet.encrypt(payload)
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as f:
                f.write(token)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            try:
                tmp_path.unlink()
            except OSError:
                pass
            raise StorageError(f"Error saving keywords to {self.path}: {e}", e)

        logger.debug(f"Saved {len(keywords)} keywords to {self.path}")
