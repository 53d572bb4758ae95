from livequiz.services.sessions.leaderboard import build_leaderboard
from livequiz.services.sessions.state import Participant


def _p(pid, name, score, correct):
    return Participant(participant_id=pid, display_name=name, score=score, correct_count=correct)


def test_orders_by_score_then_correct_count_then_name():
    board = build_leaderboard([
        _p('1', 'Zoe', 100, 1),
        _p('2', 'Adam', 200, 2),
        _p('3', 'Bea', 100, 2),
    ])
    assert [e['displayName'] for e in board] == ['Adam', 'Bea', 'Zoe']
    assert [e['rank'] for e in board] == [1, 2, 3]


def test_ties_share_rank_only_when_score_and_correct_count_match():
    board = build_leaderboard([
        _p('1', 'Cara', 150, 2),
        _p('2', 'Ben', 150, 2),
        _p('3', 'Ann', 150, 1),
        _p('4', 'Dan', 90, 1),
    ])
    assert [e['displayName'] for e in board] == ['Ben', 'Cara', 'Ann', 'Dan']
    # dense ranking
    assert [e['rank'] for e in board] == [1, 1, 2, 3]


def test_limit_keeps_top_entries():
    players = [_p(str(i), f'P{i:02d}', i * 10, 0) for i in range(20)]
    board = build_leaderboard(players, limit=5)
    assert len(board) == 5
    assert board[0]['score'] == 190
    assert board[-1]['score'] == 150


def test_board_is_a_snapshot():
    player = _p('1', 'Ann', 10, 1)
    board = build_leaderboard([player])
    player.score = 999
    assert board[0]['score'] == 10

