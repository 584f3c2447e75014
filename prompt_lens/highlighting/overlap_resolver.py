"""
Overlap resolution for highlight matches.

Candidates are ranked by confidence (desc), then span length (desc), with
the input order breaking remaining ties. Each candidate is accepted if
its [start, end) range does not intersect any already accepted range.
Accepted ranges are kept sorted by start so each check is a bisect plus
two neighbor comparisons.
"""

import bisect

from prompt_lens.highlighting.models import Match


def resolve_overlaps(matches: list[Match]) -> list[Match]:
    """
    Greedily keep the strongest non-overlapping matches.

    Args:
        matches: Candidate matches in any order

    Returns:
        Accepted matches in acceptance order (strongest first). Callers sort
        by start offset for display.
    """
    ranked = sorted(matches, key=lambda m: (-m.confidence, -m.length))

    accepted: list[Match] = []
    starts: list[int] = []
    ends: list[int] = []

    for match in ranked:
        if match.end <= match.start:
            continue
        index = bisect.bisect_left(starts, match.start)
        # Previous accepted range must end at or before our start
        if index > 0 and ends[index - 1] > match.start:
            continue
        # Next accepted range must start at or after our end
        if index < len(starts) and starts[index] < match.end:
            continue

        starts.insert(index, match.start)
        ends.insert(index, match.end)
        accepted.append(match)

    return accepted
