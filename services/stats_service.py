"""
辯論統計

用對手給的評分算出使用者的辯論表現，讀取時才計算，不另外存。
"""
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import DebateRating


def get_user_debate_stats(user_id: str, db: Session) -> Dict[str, Any]:
    """
    Return aggregate ratings received by a user.

    Averages are on the 1-5 scale, rounded to two decimals, and 0.0 when
    the user has not been rated yet.
    """
    row = (
        db.query(
            func.count(func.distinct(DebateRating.room_id)),
            func.avg(DebateRating.logical_reasoning),
            func.avg(DebateRating.politeness),
            func.avg(DebateRating.openness_to_change),
            func.count(DebateRating.id),
        )
        .filter(DebateRating.voted_for_user_id == user_id)
        .one()
    )
    total_debates, logical, polite, openness, total_votes = row

    return {
        "user_id": user_id,
        "total_debates": total_debates or 0,
        "avg_logical_reasoning": round(float(logical or 0), 2),
        "avg_politeness": round(float(polite or 0), 2),
        "avg_openness_to_change": round(float(openness or 0), 2),
        "total_votes_received": total_votes or 0,
    }
