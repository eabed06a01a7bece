"""Position arithmetic for phrase and proximity matching.

Positions are 0-based token offsets within a single field.
"""

from __future__ import annotations

from collections.abc import Sequence
import heapq


def within_distance(
    position_lists: Sequence[Sequence[int]],
    distance: int,
    lengths: Sequence[int] | None = None,
) -> bool:
    """Check whether all terms fit in a window with at most ``distance`` tokens between its ends.

    Matches FTS5's ``NEAR(a b c, N)``: N bounds the tokens between the end of the
    first term and the start of the last term of the window, counting any other
    terms inside it. ``NEAR(a b, 0)`` requires ``a`` and ``b`` to be adjacent, in
    either order.

    Args:
        position_lists: Start positions of each term
        distance: Maximum number of tokens between the window ends
        lengths: Token length of each term (multi-token terms); defaults to 1 each
    """
    if not position_lists or any(not positions for positions in position_lists):
        return False
    if len(position_lists) == 1:
        return True
    sizes = list(lengths) if lengths is not None else [1] * len(position_lists)
    lists = [sorted(positions) for positions in position_lists]

    heap = [(positions[0], idx, 0) for idx, positions in enumerate(lists)]
    heapq.heapify(heap)
    window_max = max(positions[0] for positions in lists)
    while True:
        low, list_idx, offset = heapq.heappop(heap)
        if window_max - (low + sizes[list_idx]) <= distance:
            return True
        if offset + 1 == len(lists[list_idx]):
            return False
        following = lists[list_idx][offset + 1]
        window_max = max(window_max, following)
        heapq.heappush(heap, (following, list_idx, offset + 1))


def phrase_starts(word_positions: Sequence[Sequence[int]]) -> list[int]:
    """Return start positions where the words occur contiguously and in order."""
    if not word_positions:
        return []
    following = [set(positions) for positions in word_positions[1:]]
    return [
        start
        for start in word_positions[0]
        if all(start + offset + 1 in positions for offset, positions in enumerate(following))
    ]
