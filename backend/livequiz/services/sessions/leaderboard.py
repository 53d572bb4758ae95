from typing import Any, Dict, Iterable, List, Optional

from .state import Participant


def build_leaderboard(participants: Iterable[Participant], limit: Optional[int] = 10) -> List[Dict[str, Any]]:
    """Rank participants by score, then correct answers, then name.

    Ranks are dense; two entries share a rank only when both score and
    correct count are equal. Callers hold the session lock, and the values
    are copied up front so later score updates cannot leak into the result.
    """
    rows = [
        (p.score, p.correct_count, p.display_name, p.participant_id, p.photo_ref, p.answered_count)
        for p in list(participants)
    ]
    rows.sort(key=lambda r: (-r[0], -r[1], r[2].casefold(), r[2]))

    board = []
    rank = 0
    previous = None
    for row in rows[:limit] if limit is not None else rows:
        key = (row[0], row[1])
        if key != previous:
            rank += 1
            previous = key
        board.append({
            'rank': rank,
            'participantId': row[3],
            'displayName': row[2],
            'photoRef': row[4],
            'score': row[0],
            'correctCount': row[1],
            'answeredCount': row[5],
        })
    return board

