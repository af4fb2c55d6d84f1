import logging
from typing import Any, Dict, Optional

from tapgame import db
from tapgame.models import Redemption
from . import queries, storage
from .config import RuleConfig, coerce_points, normalize_label
from .errors import (
    ClusterNotRedeemable,
    InsufficientPoints,
    InvalidRedeemPoints,
    InvalidRedemption,
)


class RedemptionEngine:
    def __init__(self, config: RuleConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def redeem(self, registration_id, cluster_label, redeemed_by=None) -> Dict[str, Any]:
        """Spend a cluster's ``redeem_points`` from the team's balance.

        The balance is read with SELECT ... FOR UPDATE, so a second redemption
        against the same team waits for the first to commit and then sees the
        reduced score. Raises a ``RedemptionError`` subclass on any rejection.
        """
        label = normalize_label(cluster_label)
        if not registration_id or not label:
            raise InvalidRedemption()
        try:
            registration_id = int(registration_id)
        except (TypeError, ValueError):
            raise InvalidRedemption()
        if not queries.registration_exists(registration_id):
            raise InvalidRedemption()
        rule = self.config.get_cluster_rule(label)
        if not rule or rule.get('redeemable') is not True:
            raise ClusterNotRedeemable()
        points = coerce_points(rule.get('redeem_points') or 0)
        if points is None:
            raise InvalidRedeemPoints()

        try:
            storage.ensure_team_score_row(registration_id)
            current = storage.lock_team_score(registration_id)
            if current < points:
                raise InsufficientPoints()
            storage.subtract_points_from_team(registration_id, points)
            db.session.add(Redemption(
                registration_id=registration_id,
                cluster_label=label,
                points_spent=points,
                redeemed_by=redeemed_by,
            ))
            db.session.commit()
        except InsufficientPoints:
            db.session.rollback()
            self.logger.info(f"[redeem-refused] team={registration_id} label={label} balance={current} needed={points}")
            raise
        except Exception:
            db.session.rollback()
            self.logger.warning(f"[redeem-rollback] team={registration_id} label={label}")
            raise

        self.logger.info(f"[redeem] team={registration_id} label={label} points={points} by={redeemed_by}")
        return {
            'ok': True,
            'registration_id': registration_id,
            'cluster_label': label,
            'points_spent': points,
            'score': current - points,
        }
