from dataclasses import dataclass
from typing import Optional

from .config import RuleConfig, normalize_label
from . import queries


DISABLED = 'disabled'
EXIT = 'exit'
NOT_ELIGIBLE = 'not-eligible'
RFID_NOT_IN_TEAM = 'rfid-not-in-team'
MEMBER_NOT_FOUND = 'member-not-found'
ELIGIBLE = 'eligible'


@dataclass
class TapClassification:
    outcome: str
    label: str
    rfid_card_id: str
    team_id: Optional[int] = None
    member_id: Optional[int] = None

    @property
    def eligible(self) -> bool:
        return self.outcome == ELIGIBLE


class TapClassifier:
    """Decides whether a persisted tap can score and who it belongs to."""

    def __init__(self, config: RuleConfig, exit_label: str = 'EXITOUT'):
        self.config = config
        self.exit_label = normalize_label(exit_label)

    def classify(self, tap) -> TapClassification:
        label = normalize_label(tap.label)
        rfid = tap.rfid_card_id
        if not self.config.enabled:
            return TapClassification(DISABLED, label, rfid)
        if label and label == self.exit_label:
            return TapClassification(EXIT, label, rfid)

        prefix = normalize_label(self.config.get_rule('eligible_label_prefix', 'CLUSTER'))
        if not label or not label.startswith(prefix):
            return TapClassification(NOT_ELIGIBLE, label, rfid)

        team_id = queries.find_team_id_for_card(rfid)
        if team_id is None:
            return TapClassification(RFID_NOT_IN_TEAM, label, rfid)

        member_id = queries.find_member_id(team_id, rfid)
        if member_id is None:
            return TapClassification(MEMBER_NOT_FOUND, label, rfid, team_id=team_id)

        return TapClassification(ELIGIBLE, label, rfid, team_id=team_id, member_id=member_id)
