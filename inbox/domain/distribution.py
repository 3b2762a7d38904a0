from collections.abc import Iterable, Mapping, Sequence


def unique_participants(participants: Iterable[str]) -> list[str]:
    return [participant for participant in dict.fromkeys(participants) if participant]


def pick_least_loaded(
    participants: Sequence[str],
    loads: Mapping[str, int],
) -> str | None:
    """Return the participant with the fewest open conversations.

    Ties go to whoever appears first in ``participants``.
    """
    candidates = unique_participants(participants)
    if not candidates:
        return None
    return min(candidates, key=lambda participant: loads.get(participant, 0))
