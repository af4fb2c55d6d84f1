"""Write-side statements shared by the scoring, redemption and cleanup engines.

All helpers run on ``db.session`` and never commit; the calling engine owns
the transaction boundary.
"""
from typing import Any, Dict, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite

from tapgame import db
from tapgame.models import Member, MemberClusterVisit, Redemption, TeamScore


def insert_if_absent(model, values: Dict[str, Any], index_elements: Sequence[str]) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING. Returns True when a row was inserted."""
    dialect = db.session.get_bind().dialect.name
    if dialect == 'postgresql':
        insert = postgresql.insert
    elif dialect == 'sqlite':
        insert = sqlite.insert
    else:
        raise NotImplementedError(f"insert-if-absent is not supported on {dialect}")
    stmt = insert(model.__table__).values(**values).on_conflict_do_nothing(index_elements=list(index_elements))
    result = db.session.execute(stmt)
    return result.rowcount > 0


def record_visit_if_first(member_id: int, cluster_label: str) -> bool:
    return insert_if_absent(
        MemberClusterVisit,
        {'member_id': member_id, 'cluster_label': cluster_label},
        ['member_id', 'cluster_label'],
    )


def ensure_team_score_row(registration_id: int) -> None:
    insert_if_absent(TeamScore, {'registration_id': registration_id, 'score': 0}, ['registration_id'])


def add_points_to_team(registration_id: int, points: int) -> None:
    ensure_team_score_row(registration_id)
    db.session.execute(
        update(TeamScore.__table__)
        .where(TeamScore.__table__.c.registration_id == registration_id)
        .values(score=TeamScore.__table__.c.score + points)
    )


def team_score_for_update(registration_id: int):
    return (
        select(TeamScore.__table__.c.score)
        .where(TeamScore.__table__.c.registration_id == registration_id)
        .with_for_update()
    )


def lock_team_score(registration_id: int) -> int:
    """Read the balance holding an exclusive row lock until commit/rollback."""
    return int(db.session.execute(team_score_for_update(registration_id)).scalar_one())


def subtract_points_from_team(registration_id: int, points: int) -> None:
    db.session.execute(
        update(TeamScore.__table__)
        .where(TeamScore.__table__.c.registration_id == registration_id)
        .values(score=TeamScore.__table__.c.score - points)
    )


def purge_team_session(registration_id: int) -> None:
    member_ids = select(Member.__table__.c.id).where(Member.__table__.c.registration_id == registration_id)
    db.session.execute(
        delete(MemberClusterVisit.__table__).where(MemberClusterVisit.__table__.c.member_id.in_(member_ids))
    )
    db.session.execute(
        delete(Redemption.__table__).where(Redemption.__table__.c.registration_id == registration_id)
    )
    db.session.execute(
        delete(TeamScore.__table__).where(TeamScore.__table__.c.registration_id == registration_id)
    )
