from abc import ABC
from collections.abc import Mapping
from typing import Iterator, TypeVar


class Immutable(ABC):
    def __copy__(self):
        return self

    def __deepcopy__(self, _):
        return self


K = TypeVar('K')
V = TypeVar('V')


class frozenmapping(Mapping[K, V]):
    """Read-only, hashable and insertion ordered mapping"""

    def __init__(self, mapping=()):
        if isinstance(mapping, frozenmapping):
            self._mapping = mapping._mapping
            self._hash = mapping._hash
        else:
            self._mapping = dict(mapping)
            self._hash = None

    def __getitem__(self, key: K) -> V:
        return self._mapping[key]

    def __iter__(self) -> Iterator[K]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def __repr__(self):
        return f'frozenmapping({self._mapping!r})'

    def __eq__(self, other):
        if isinstance(other, frozenmapping):
            return self._mapping == other._mapping
        return NotImplemented

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(tuple(self._mapping.items()))
        return self._hash
