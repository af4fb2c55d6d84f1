from datetime import datetime, timezone
from tapgame import db


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Registration(db.Model):
    """A team as registered at a portal."""
    __tablename__ = 'registration'
    id = db.Column(db.Integer, primary_key=True)
    portal = db.Column(db.String(64), nullable=True)
    group_size = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    members = db.relationship('Member', back_populates='registration')

class Member(db.Model):
    __tablename__ = 'members'
    id = db.Column(db.Integer, primary_key=True)
    registration_id = db.Column(db.Integer, db.ForeignKey('registration.id'), nullable=False, index=True)
    rfid_card_id = db.Column(db.String(64), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False, default='MEMBER')  # LEADER, MEMBER
    registration = db.relationship('Registration', back_populates='members')

class TapLog(db.Model):
    """Raw reader event, written by the tap-logging endpoint."""
    __tablename__ = 'logs'
    id = db.Column(db.Integer, primary_key=True)
    log_time = db.Column(db.DateTime, default=_utcnow, nullable=False, index=True)
    rfid_card_id = db.Column(db.String(64), nullable=False, index=True)
    portal = db.Column(db.String(64), nullable=True)
    label = db.Column(db.String(64), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'rfid_card_id': self.rfid_card_id,
            'portal': self.portal,
            'label': self.label,
            'log_time': self.log_time.isoformat() if self.log_time else None,
        }

class TeamScore(db.Model):
    __tablename__ = 'team_scores_lite'
    __table_args__ = (
        db.CheckConstraint('score >= 0', name='ck_team_scores_lite_score_non_negative'),
    )
    registration_id = db.Column(db.Integer, db.ForeignKey('registration.id'), primary_key=True, autoincrement=False)
    score = db.Column(db.Integer, nullable=False, default=0)

class MemberClusterVisit(db.Model):
    # Composite primary key is the first-visit dedup key
    __tablename__ = 'member_cluster_visits_lite'
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), primary_key=True, autoincrement=False)
    cluster_label = db.Column(db.String(64), primary_key=True)
    first_visit_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

class Redemption(db.Model):
    """Append-only log of points spent at redeemable clusters."""
    __tablename__ = 'redemptions_lite'
    id = db.Column(db.Integer, primary_key=True)
    registration_id = db.Column(db.Integer, db.ForeignKey('registration.id'), nullable=False, index=True)
    cluster_label = db.Column(db.String(64), nullable=False)
    points_spent = db.Column(db.Integer, nullable=False)
    redeemed_by = db.Column(db.String(128), nullable=True)
    redeemed_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
