import os
import threading

import pytest
from sqlalchemy.dialects import postgresql

from tapgame import create_app, db
from tapgame.models import Redemption, TeamScore
from tapgame.services.gamelite import queries, storage
from tapgame.services.gamelite.errors import (
    ClusterNotRedeemable,
    InsufficientPoints,
    InvalidRedeemPoints,
    InvalidRedemption,
    RedemptionError,
)


def _redeemable(gamelite, label='CLUSTER1', points=2, **extra):
    rule = {'redeemable': True, 'redeem_points': points}
    rule.update(extra)
    gamelite.config.update({'rules': {'cluster_rules': {label: rule}}})


def _give_points(team_id, points):
    storage.add_points_to_team(team_id, points)
    db.session.commit()


def test_missing_identifiers(gamelite):
    _redeemable(gamelite)
    with pytest.raises(InvalidRedemption, match='Invalid redemption'):
        gamelite.redemption.redeem(None, 'CLUSTER1')
    with pytest.raises(InvalidRedemption):
        gamelite.redemption.redeem(1, '   ')


def test_cluster_must_be_redeemable(gamelite, make_team):
    team_id = make_team('M1')
    with pytest.raises(ClusterNotRedeemable, match='Cluster not redeemable'):
        gamelite.redemption.redeem(team_id, 'CLUSTER1')
    gamelite.config.update({'rules': {'cluster_rules': {
        'CLUSTER1': {'redeemable': False, 'redeem_points': 1},
        'CLUSTER2': {'redeemable': 'true', 'redeem_points': 1},
    }}})
    with pytest.raises(ClusterNotRedeemable):
        gamelite.redemption.redeem(team_id, 'CLUSTER1')
    with pytest.raises(ClusterNotRedeemable):
        gamelite.redemption.redeem(team_id, 'CLUSTER2')


@pytest.mark.parametrize('bad', [-1, 'lots', float('nan'), float('inf')])
def test_invalid_redeem_points(gamelite, make_team, bad):
    team_id = make_team('M1')
    _give_points(team_id, 10)
    _redeemable(gamelite, points=bad)
    with pytest.raises(InvalidRedeemPoints, match='Invalid redeem points'):
        gamelite.redemption.redeem(team_id, 'CLUSTER1')
    assert queries.get_team_score(team_id) == 10


def test_successful_redemption(gamelite, make_team):
    team_id = make_team('M1')
    _give_points(team_id, 3)
    _redeemable(gamelite, points=2)
    out = gamelite.redemption.redeem(team_id, ' cluster1 ', redeemed_by='booth-7')
    assert out == {
        'ok': True,
        'registration_id': team_id,
        'cluster_label': 'CLUSTER1',
        'points_spent': 2,
        'score': 1,
    }
    assert queries.get_team_score(team_id) == 1
    record = Redemption.query.filter_by(registration_id=team_id).one()
    assert record.cluster_label == 'CLUSTER1'
    assert record.points_spent == 2
    assert record.redeemed_by == 'booth-7'


def test_insufficient_points_leaves_state_untouched(gamelite, make_team):
    team_id = make_team('M1')
    _give_points(team_id, 1)
    _redeemable(gamelite, points=2)
    with pytest.raises(InsufficientPoints, match='Insufficient points'):
        gamelite.redemption.redeem(team_id, 'CLUSTER1')
    assert queries.get_team_score(team_id) == 1
    assert Redemption.query.count() == 0


def test_team_without_score_row_cannot_spend(gamelite, make_team):
    team_id = make_team('M1')
    _redeemable(gamelite, points=1)
    with pytest.raises(InsufficientPoints):
        gamelite.redemption.redeem(team_id, 'CLUSTER1')
    assert TeamScore.query.count() == 0


def test_zero_cost_redemption_is_logged(gamelite, make_team):
    team_id = make_team('M1')
    gamelite.config.update({'rules': {'cluster_rules': {'CLUSTER1': {'redeemable': True}}}})
    out = gamelite.redemption.redeem(team_id, 'CLUSTER1')
    assert out['points_spent'] == 0
    assert out['score'] == 0
    assert Redemption.query.count() == 1


def test_fractional_cost_is_truncated(gamelite, make_team):
    team_id = make_team('M1')
    _give_points(team_id, 1)
    _redeemable(gamelite, points=1.9)
    assert gamelite.redemption.redeem(team_id, 'CLUSTER1')['points_spent'] == 1
    assert queries.get_team_score(team_id) == 0


def test_second_redemption_sees_first_decrement(gamelite, make_team):
    team_id = make_team('M1')
    _give_points(team_id, 2)
    _redeemable(gamelite, points=2)
    gamelite.redemption.redeem(team_id, 'CLUSTER1')
    with pytest.raises(InsufficientPoints):
        gamelite.redemption.redeem(team_id, 'CLUSTER1')
    assert queries.get_team_score(team_id) == 0
    assert Redemption.query.count() == 1


def test_balance_never_negative_across_awards_and_redemptions(gamelite, make_team, tap):
    team_id = make_team('M1', 'M2')
    _redeemable(gamelite, label='CLUSTER9', points=2)
    steps = [
        ('tap', 'M1', 'CLUSTER1'), ('redeem',), ('tap', 'M2', 'CLUSTER1'), ('redeem',),
        ('redeem',), ('tap', 'M1', 'CLUSTER2'), ('tap', 'M1', 'CLUSTER2'), ('redeem',),
        ('tap', 'M2', 'CLUSTER3'), ('redeem',),
    ]
    for step in steps:
        if step[0] == 'tap':
            tap(step[1], step[2])
        else:
            try:
                gamelite.redemption.redeem(team_id, 'CLUSTER9')
            except InsufficientPoints:
                pass
        assert queries.get_team_score(team_id) >= 0
    assert Redemption.query.count() == 2


def test_balance_is_read_with_row_lock():
    sql = str(storage.team_score_for_update(1).compile(dialect=postgresql.dialect()))
    assert 'FOR UPDATE' in sql


def test_errors_share_a_base_class():
    for exc in (InvalidRedemption, ClusterNotRedeemable, InvalidRedeemPoints, InsufficientPoints):
        assert issubclass(exc, RedemptionError)


POSTGRES_URL = os.environ.get('TEST_POSTGRES_URL')


@pytest.mark.skipif(not POSTGRES_URL, reason='TEST_POSTGRES_URL not set')
def test_concurrent_redemptions_only_one_succeeds():
    from conftest import TestConfig
    from tapgame.models import Member, Registration

    class PostgresConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = POSTGRES_URL

    application = create_app(PostgresConfig)
    with application.app_context():
        db.drop_all()
        db.create_all()
        team = Registration(portal='portal1', group_size=1)
        db.session.add(team)
        db.session.flush()
        team_id = team.id
        db.session.add(Member(registration_id=team_id, rfid_card_id='M1'))
        db.session.commit()
        _give_points(team_id, 3)
        gamelite = application.extensions['gamelite']
        _redeemable(gamelite, points=3)

    barrier = threading.Barrier(2)
    outcomes = []

    def worker():
        with application.app_context():
            barrier.wait()
            try:
                gamelite.redemption.redeem(team_id, 'CLUSTER1')
                outcomes.append('ok')
            except InsufficientPoints:
                outcomes.append('insufficient')
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    with application.app_context():
        try:
            assert sorted(outcomes) == ['insufficient', 'ok']
            assert queries.get_team_score(team_id) == 0
        finally:
            db.session.remove()
            db.drop_all()


def test_simultaneous_redemptions_spend_the_balance_once(file_app):
    from conftest import run_together
    from tapgame.models import Member, Registration

    with file_app.app_context():
        team = Registration(portal='portal1', group_size=1)
        db.session.add(team)
        db.session.flush()
        team_id = team.id
        db.session.add(Member(registration_id=team_id, rfid_card_id='M1'))
        db.session.commit()
        _give_points(team_id, 3)
        gamelite = file_app.extensions['gamelite']
        _redeemable(gamelite, points=3)

    results, errors = run_together(file_app, 4, lambda: gamelite.redemption.redeem(team_id, 'CLUSTER1')['ok'])

    assert results == [True]
    assert len(errors) == 3
    assert all(isinstance(exc, InsufficientPoints) for exc in errors)
    with file_app.app_context():
        assert queries.get_team_score(team_id) == 0
        assert Redemption.query.count() == 1


def test_unknown_registration_is_rejected(gamelite):
    gamelite.config.update({'rules': {'cluster_rules': {'CLUSTER1': {'redeemable': True}}}})
    with pytest.raises(InvalidRedemption):
        gamelite.redemption.redeem(404, 'CLUSTER1')
    with pytest.raises(InvalidRedemption):
        gamelite.redemption.redeem('abc', 'CLUSTER1')
    assert TeamScore.query.count() == 0
    assert Redemption.query.count() == 0
