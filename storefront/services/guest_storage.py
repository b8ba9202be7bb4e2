from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from storefront.config import settings
from storefront.errors import ParseError, StoreUnavailable


class LocalStorage:
    """
    Device-local key/value storage, one file per key.

    Plays the part of the browser's localStorage for the guest cart: values
    are opaque strings and writes replace the whole value.
    """

    def __init__(self, directory: Optional[str] = None) -> None:
        self.directory = Path(directory or settings.guest_storage_dir)

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.\-]", "_", key)
        return self.directory / f"{safe}.json"

    def get_item(self, key: str) -> Optional[str]:
        p = self._path(key)
        if not p.exists():
            return None
        try:
            return p.read_text(encoding="utf-8")
        except OSError as e:
            raise StoreUnavailable(f"cannot read {p}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        p = self._path(key)
        tmp = p.with_suffix(".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(value, encoding="utf-8")
            os.replace(tmp, p)
        except OSError as e:
            raise StoreUnavailable(f"cannot write {p}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StoreUnavailable(f"cannot remove {key}: {e}") from e

    def has_item(self, key: str) -> bool:
        return self._path(key).exists()


def decode_snapshot(raw: Optional[str]) -> List[Dict[str, Any]]:
    """Parse a guest cart blob into a list of line dicts; None means empty."""
    if raw is None or raw.strip() == "":
        return []
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ParseError(f"guest cart is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise ParseError("guest cart must be a JSON array")
    for entry in data:
        if not isinstance(entry, dict) or "productId" not in entry:
            raise ParseError(f"malformed guest cart entry: {entry!r}")
    return data


def encode_snapshot(entries: List[Dict[str, Any]]) -> str:
    return json.dumps(entries, ensure_ascii=False)
