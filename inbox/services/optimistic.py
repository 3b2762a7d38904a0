import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

T = TypeVar("T")

_MISSING = object()


@dataclass(slots=True)
class _PendingField:
    # Holding the target keeps its id from being reused while updates are in flight.
    target: Any
    restore: dict[int, Any] = field(default_factory=dict)


class OptimisticUpdates:
    """Optimistic field writes with rollback, scoped to one owner.

    Overlapping updates of the same field resolve to the last call: a failing
    update never overwrites a value written by a later one, and an update that
    succeeds makes every earlier in-flight update's rollback a no-op.
    """

    def __init__(self) -> None:
        self._sequence = itertools.count(1)
        self._in_flight: dict[tuple[int, str], _PendingField] = {}

    def __len__(self) -> int:
        return len(self._in_flight)

    async def apply(
        self,
        target: Any,
        name: str,
        value: Any,
        persist: Callable[[], Awaitable[T]],
    ) -> T:
        """Set ``target.name`` to ``value`` before ``persist`` runs.

        If ``persist`` raises, the field is rolled back and the error re-raised.
        """
        key = (id(target), name)
        generation = next(self._sequence)
        pending = self._in_flight.get(key)
        if pending is None or pending.target is not target:
            pending = self._in_flight[key] = _PendingField(target)
        pending.restore[generation] = getattr(target, name, _MISSING)
        setattr(target, name, value)

        try:
            result = await persist()
        except BaseException:
            self._roll_back(pending, name, generation)
            raise
        else:
            for earlier in [gen for gen in pending.restore if gen <= generation]:
                del pending.restore[earlier]
            return result
        finally:
            if not pending.restore and self._in_flight.get(key) is pending:
                del self._in_flight[key]

    @staticmethod
    def _roll_back(pending: _PendingField, name: str, generation: int) -> None:
        if generation not in pending.restore:
            # Superseded by a later update that already succeeded.
            return

        previous = pending.restore.pop(generation)
        later = [gen for gen in pending.restore if gen > generation]
        if later:
            # A later update owns the field now; it inherits our rollback target.
            pending.restore[min(later)] = previous
            return

        if previous is _MISSING:
            delattr(pending.target, name)
        else:
            setattr(pending.target, name, previous)
