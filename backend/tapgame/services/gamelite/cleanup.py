import logging
from typing import Optional

from tapgame import db
from . import queries, storage
from .config import normalize_label


class ExitSessionCleaner:
    """Last one out resets the team's game session.

    When every member's most recent tap is the exit marker, the team's
    visits, redemptions and score are deleted so a re-admitted team starts
    from zero.

    The "all members out" read and the purge run as two separate steps; a
    tap landing between them is not detected and the purge still happens.
    """

    def __init__(self, exit_label: str = 'EXITOUT', logger: Optional[logging.Logger] = None):
        self.exit_label = normalize_label(exit_label)
        self.logger = logger or logging.getLogger(__name__)

    def all_members_exited(self, registration_id: int) -> bool:
        card_ids = queries.team_card_ids(registration_id)
        if not card_ids:
            return False
        latest = queries.latest_labels_for_cards(card_ids)
        return all(normalize_label(latest.get(card)) == self.exit_label for card in card_ids)

    def on_exit_tap(self, rfid_card_id: str) -> bool:
        team_id = queries.find_team_id_for_card(rfid_card_id)
        if team_id is None:
            return False
        if not self.all_members_exited(team_id):
            self.logger.debug(f"[exit-wait] team={team_id} card={rfid_card_id} members still inside")
            return False

        try:
            storage.purge_team_session(team_id)
            db.session.commit()
        except Exception:
            db.session.rollback()
            self.logger.warning(f"[exit-rollback] team={team_id} cleanup failed")
            raise
        self.logger.info(f"[exit-cleanup] team={team_id} session cleared after last member exit")
        return True
