import json
from typing import Any, Dict, Optional


class LocalStorage:
    """String key/value store standing in for one browser's local storage."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: Any) -> None:
        self._items[key] = value if isinstance(value, str) else str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    # JSON helpers for structured values (the persisted auth session)
    def get_json(self, key: str) -> Optional[Any]:
        raw = self._items.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    def set_json(self, key: str, value: Any) -> None:
        self._items[key] = json.dumps(value)
