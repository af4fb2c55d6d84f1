import logging
from typing import Any, Dict, Optional

from tapgame import db
from . import storage
from .bus import LiveEventBus
from .classifier import (
    DISABLED,
    EXIT,
    NOT_ELIGIBLE,
    TapClassification,
    TapClassifier,
)
from .cleanup import ExitSessionCleaner
from .config import RuleConfig, coerce_points


def _skipped(reason: str) -> Dict[str, Any]:
    return {'skipped': True, 'reason': reason}


class ScoringEngine:
    """Turns persisted taps into team points.

    ``on_tap_persisted`` is called by the tap-logging endpoint after its own
    commit. The first-visit decision comes only from the row count of the
    insert-if-absent on ``(member_id, cluster_label)``; there is no separate
    existence check.
    """

    def __init__(
        self,
        config: RuleConfig,
        classifier: TapClassifier,
        cleaner: ExitSessionCleaner,
        bus: LiveEventBus,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.classifier = classifier
        self.cleaner = cleaner
        self.bus = bus
        self.logger = logger or logging.getLogger(__name__)

    def on_tap_persisted(self, tap) -> Dict[str, Any]:
        classification = self.classifier.classify(tap)
        outcome = classification.outcome

        if outcome == DISABLED:
            return _skipped(DISABLED)
        if outcome == EXIT:
            self.cleaner.on_exit_tap(classification.rfid_card_id)
            return _skipped(NOT_ELIGIBLE)
        if outcome == NOT_ELIGIBLE:
            return _skipped(NOT_ELIGIBLE)
        if not classification.eligible:
            # Unknown cards still show up on the kiosk
            self._publish(tap)
            return _skipped(outcome)

        result = self._award(classification)
        self._publish(tap)
        return result

    def points_for(self, label: str, first_time: bool) -> int:
        if first_time:
            rule = self.config.get_cluster_rule(label) or {}
            raw = rule.get('award_points')
            if raw is None:
                raw = self.config.get_rule('points_per_first_visit', 1)
        elif self.config.get_rule('award_only_first_visit', True):
            return 0
        else:
            raw = self.config.get_rule('points_per_repeat_visit', 0)
        return coerce_points(raw) or 0

    def _award(self, classification: TapClassification) -> Dict[str, Any]:
        team_id = classification.team_id
        label = classification.label
        try:
            first_time = storage.record_visit_if_first(classification.member_id, label)
            points = self.points_for(label, first_time)
            if points > 0:
                storage.add_points_to_team(team_id, points)
            db.session.commit()
        except Exception:
            db.session.rollback()
            self.logger.warning(
                f"[tap-rollback] team={team_id} member={classification.member_id} label={label}"
            )
            raise

        if points > 0:
            self.logger.info(f"[tap-award] team={team_id} member={classification.member_id} label={label} points={points}")
        else:
            self.logger.debug(f"[tap-repeat] team={team_id} member={classification.member_id} label={label}")
        return {
            'awarded': points > 0,
            'points': points,
            'first_time': first_time,
            'team_id': team_id,
        }

    def _publish(self, tap) -> None:
        self.bus.publish(tap.to_dict())
