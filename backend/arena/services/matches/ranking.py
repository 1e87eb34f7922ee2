from typing import List, Optional

from flask import current_app

from arena.models import User


def win_percentage(won: int, played: int) -> float:
    if not played:
        return 0
    return round(won / played * 100, 1)


def compute_ranking(limit: Optional[int] = None) -> List[dict]:
    """Leaderboard rebuilt from every account's (won, played) pair.

    Sorted by win percentage, best first; equal percentages fall back to the
    handle so the order is stable between broadcasts.
    """
    if limit is None:
        limit = int(current_app.config.get('RANKING_SIZE', 10))
    accounts = User.query.with_entities(User.username, User.won, User.played).all()
    accounts.sort(key=lambda a: (-(a.won / a.played if a.played else 0), a.username))
    return [
        {
            'handle': a.username,
            'wins': a.won,
            'played': a.played,
            'winPct': win_percentage(a.won, a.played),
        }
        for a in accounts[:limit]
    ]
