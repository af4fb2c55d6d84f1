"""Read-only queries over teams, taps and the game-lite tables."""
import math
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, func, select

from tapgame import db
from tapgame.models import Member, Registration, TapLog, TeamScore
from .config import RuleConfig


def registration_exists(registration_id: int) -> bool:
    return db.session.execute(
        select(Registration.id).where(Registration.id == registration_id)
    ).first() is not None


def find_team_id_for_card(rfid_card_id: str) -> Optional[int]:
    return db.session.execute(
        select(Member.registration_id).where(Member.rfid_card_id == rfid_card_id).order_by(Member.id).limit(1)
    ).scalar_one_or_none()


def find_member_id(registration_id: int, rfid_card_id: str) -> Optional[int]:
    return db.session.execute(
        select(Member.id)
        .where(Member.registration_id == registration_id, Member.rfid_card_id == rfid_card_id)
        .order_by(Member.id)
        .limit(1)
    ).scalar_one_or_none()


def team_card_ids(registration_id: int) -> List[str]:
    rows = db.session.execute(
        select(Member.rfid_card_id).where(Member.registration_id == registration_id).order_by(Member.id)
    ).scalars().all()
    return list(rows)


def latest_labels_for_cards(card_ids: Iterable[str]) -> Dict[str, Optional[str]]:
    """Most recent tap label per card (latest ``log_time``, ties broken by id)."""
    card_ids = list(card_ids)
    if not card_ids:
        return {}
    ranked = (
        select(
            TapLog.rfid_card_id,
            TapLog.label,
            func.row_number().over(
                partition_by=TapLog.rfid_card_id,
                order_by=(TapLog.log_time.desc(), TapLog.id.desc()),
            ).label('rn'),
        )
        .where(TapLog.rfid_card_id.in_(card_ids))
        .subquery()
    )
    rows = db.session.execute(select(ranked.c.rfid_card_id, ranked.c.label).where(ranked.c.rn == 1)).all()
    return {row.rfid_card_id: row.label for row in rows}


def get_team_score(registration_id: int) -> int:
    score = db.session.execute(
        select(TeamScore.score).where(TeamScore.registration_id == registration_id)
    ).scalar_one_or_none()
    return int(score) if score is not None else 0


def list_team_scores() -> List[Dict[str, Any]]:
    rows = db.session.execute(
        select(TeamScore.registration_id, TeamScore.score).order_by(TeamScore.registration_id.desc())
    ).all()
    return [{'registration_id': r.registration_id, 'score': r.score} for r in rows]


def leaderboard(limit: int = 10) -> List[Dict[str, Any]]:
    rows = db.session.execute(
        select(TeamScore.registration_id, TeamScore.score)
        .order_by(TeamScore.score.desc(), TeamScore.registration_id.desc())
        .limit(limit)
    ).all()
    return [{'registration_id': r.registration_id, 'score': r.score} for r in rows]


def _team_location(registration_id: int) -> Dict[str, Any]:
    row = db.session.execute(
        select(TapLog.label, TapLog.log_time)
        .join(Member, Member.rfid_card_id == TapLog.rfid_card_id)
        .where(Member.registration_id == registration_id)
        .order_by(TapLog.log_time.desc(), TapLog.id.desc())
        .limit(1)
    ).first()
    if row is None:
        return {'latest_label': None, 'latest_time': None}
    return {
        'latest_label': row.label,
        'latest_time': row.log_time.isoformat() if row.log_time else None,
    }


def _member_count(registration_id: int) -> int:
    return db.session.execute(
        select(func.count(Member.id)).where(Member.registration_id == registration_id)
    ).scalar_one()


def _number(value, fallback):
    """Threshold rules accept numbers and numeric strings, like award values."""
    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return int(number) if number.is_integer() else number


def eligible_teams(config: RuleConfig) -> List[Dict[str, Any]]:
    """Teams whose size and score satisfy the configured thresholds, best score first.

    Size is the declared ``group_size``, or the member count when none was
    declared. Location is the latest tap by any member of the team.
    """
    min_size = _number(config.get_rule('min_group_size', 1), 1)
    max_size = _number(config.get_rule('max_group_size', 9999), 9999)
    min_points = _number(config.get_rule('min_points_required', 3), 3)

    member_counts = (
        select(Member.registration_id, func.count(Member.id).label('members'))
        .group_by(Member.registration_id)
        .subquery()
    )
    latest_taps = (
        select(
            Member.registration_id,
            TapLog.label,
            TapLog.log_time,
            func.row_number().over(
                partition_by=Member.registration_id,
                order_by=(TapLog.log_time.desc(), TapLog.id.desc()),
            ).label('rn'),
        )
        .select_from(TapLog)
        .join(Member, Member.rfid_card_id == TapLog.rfid_card_id)
        .subquery()
    )
    size = func.coalesce(Registration.group_size, member_counts.c.members, 0)
    score = func.coalesce(TeamScore.score, 0)

    rows = db.session.execute(
        select(
            Registration.id,
            size.label('group_size'),
            score.label('score'),
            latest_taps.c.label,
            latest_taps.c.log_time,
        )
        .select_from(Registration)
        .outerjoin(member_counts, member_counts.c.registration_id == Registration.id)
        .outerjoin(TeamScore, TeamScore.registration_id == Registration.id)
        .outerjoin(
            latest_taps,
            and_(latest_taps.c.registration_id == Registration.id, latest_taps.c.rn == 1),
        )
        .where(size >= min_size, size <= max_size, score >= min_points)
        .order_by(score.desc(), Registration.id.desc())
    ).all()

    return [
        {
            'registration_id': row.id,
            'group_size': int(row.group_size),
            'score': int(row.score),
            'latest_label': row.label,
            'latest_time': row.log_time.isoformat() if row.log_time else None,
        }
        for row in rows
    ]


def eligibility_for_card(rfid_card_id: str, config: RuleConfig) -> Dict[str, Any]:
    registration_id = find_team_id_for_card(rfid_card_id)
    if registration_id is None:
        return {'unknown': True, 'rfid_card_id': rfid_card_id}

    min_size = _number(config.get_rule('min_group_size', 1), 1)
    max_size = _number(config.get_rule('max_group_size', 9999), 9999)
    min_points = _number(config.get_rule('min_points_required', 0), 0)

    group_size = _member_count(registration_id)
    score = get_team_score(registration_id)
    location = _team_location(registration_id)
    return {
        'registration_id': registration_id,
        'group_size': group_size,
        'score': score,
        'eligible': min_size <= group_size <= max_size and score >= min_points,
        'min_group_size': min_size,
        'max_group_size': max_size,
        'min_points_required': min_points,
        'latest_label': location['latest_label'],
        'last_seen_at': location['latest_time'],
    }
