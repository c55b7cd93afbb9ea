# src/noderewards/storage/ordered_store.py
from __future__ import annotations

from typing import Any, List

from noderewards.storage.kv import JsonAccess

Json = Any


class OrderedStore:
    """Persisted key -> value map that remembers first-insertion order.

    Layout under `<name>`:
      <name>:size         number of distinct keys ever set
      <name>:idx:<i>      key inserted at position i
      <name>:data:<key>   value

    Keys are kept as given (ints stay ints) because the index entries are
    JSON. The first set() of a key fixes its position; later sets only
    overwrite the value.
    """

    def __init__(self, storage: JsonAccess, name: str) -> None:
        self.storage = storage
        self.name = str(name)
        self._size_key = f"{self.name}:size"

    def _index_key(self, index: int) -> str:
        return f"{self.name}:idx:{int(index)}"

    def _data_key(self, key: Any) -> str:
        return f"{self.name}:data:{key}"

    def get(self, key: Any) -> Json:
        return self.storage.get(self._data_key(key))

    def __contains__(self, key: Any) -> bool:
        return self.storage.get_raw(self._data_key(key)) is not None

    def set(self, key: Any, value: Json) -> None:
        if key not in self:
            size = self.size()
            self.storage.set(self._index_key(size), key)
            self.storage.set(self._size_key, size + 1)
        self.storage.set(self._data_key(key), value)

    def size(self) -> int:
        return int(self.storage.get(self._size_key, 0) or 0)

    def key_at(self, index: int) -> Any:
        if index < 0 or index >= self.size():
            raise IndexError(f"{self.name}: key index {index} out of range")
        return self.storage.get(self._index_key(index))

    def keys(self) -> List[Any]:
        return [self.storage.get(self._index_key(i)) for i in range(self.size())]

    def last_key(self) -> Any:
        return self.key_at(self.size() - 1)
