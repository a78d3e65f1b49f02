"""
storage.py — Local Persistence for the Pending Order

The cart page remembers one in-flight order across reloads. The record lives
in a small key-value store backed by one JSON file per key under `STATE_DIR`.

None of the operations here raise: an unreadable, corrupt or unavailable
store behaves exactly like an empty one.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import PendingOrderRecord

log = logging.getLogger(__name__)


class LocalStorage:
    """
    String key-value slots persisted as files.

    Args:
        state_dir (str | Path): Directory holding one `<key>.json` file per key.
    """

    def __init__(self, state_dir):
        self.state_dir = Path(state_dir)

    def _path(self, key: str) -> Path:
        return self.state_dir / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            log.warning(f"Storage read failed for '{key}': {e}")
            return None

    def set_item(self, key: str, value: str) -> bool:
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            tmp_path.replace(path)
            return True
        except OSError as e:
            log.warning(f"Storage write failed for '{key}': {e}")
            return False

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            log.warning(f"Storage delete failed for '{key}': {e}")


class PendingOrderStore:
    """
    Single-slot store for the order awaiting payment confirmation.

    Writing replaces any previous record (last write wins).
    """

    def __init__(self, storage: LocalStorage, key: str = "lastPendingOrder"):
        self.storage = storage
        self.key = key

    def save(self, record: PendingOrderRecord) -> None:
        if self.storage.set_item(self.key, record.model_dump_json()):
            log.info(f"[Order: {record.id}] Pending order saved (total {record.total}).")

    def read(self) -> Optional[PendingOrderRecord]:
        raw = self.storage.get_item(self.key)
        if not raw:
            return None
        try:
            return PendingOrderRecord.model_validate_json(raw)
        except (ValidationError, ValueError):
            log.warning(f"Ignoring unreadable pending order record: {raw[:80]!r}")
            return None

    def clear(self) -> None:
        self.storage.remove_item(self.key)
