from matchup import db, bcrypt
from flask_login import UserMixin


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class Cycle(db.Model):
    """Singleton row driving the 5-checkpoint bracket clock.

    ``base_iso`` names the cycle and prefixes every phase key; it only changes
    on reset. ``cycle_start`` is the clock anchor and shifts on resume so the
    paused remainder is preserved.
    """
    __tablename__ = 'cycle'
    id = db.Column(db.Integer, primary_key=True)
    base_iso = db.Column(db.String(32), nullable=False)
    cycle_start = db.Column(db.Float, nullable=False)  # epoch seconds
    period_sec = db.Column(db.Integer, nullable=False)
    paused = db.Column(db.Boolean, nullable=False, default=False)
    last_checkpoint = db.Column(db.Integer, nullable=False, default=0)
    paused_remaining_sec = db.Column(db.Float, nullable=True)
    updated_at = db.Column(db.Float, nullable=True)


class TournamentState(db.Model):
    """Singleton row for the single-period countdown."""
    __tablename__ = 'tournament_state'
    id = db.Column(db.Integer, primary_key=True)
    phase_end_at = db.Column(db.Float, nullable=False)  # epoch seconds
    period_sec = db.Column(db.Integer, nullable=False)
    paused = db.Column(db.Boolean, nullable=False, default=False)
    paused_remaining_sec = db.Column(db.Float, nullable=True)
    updated_at = db.Column(db.Float, nullable=True)


class ZeroRollover(db.Model):
    __tablename__ = 'zero_rollover'
    id = db.Column(db.Integer, primary_key=True)
    phase_end_at = db.Column(db.Float, nullable=False, unique=True)
    rollover_at = db.Column(db.Float, nullable=False)
    source = db.Column(db.String(32), nullable=False, default='timer')

    def to_dict(self):
        return {
            'phase_end_at': self.phase_end_at,
            'rollover_at': self.rollover_at,
            'source': self.source,
        }


class PhaseVote(db.Model):
    __tablename__ = 'phase_vote'
    __table_args__ = (db.UniqueConstraint('phase_key', 'voter_id', name='uq_phase_vote_voter'),)
    id = db.Column(db.Integer, primary_key=True)
    phase_key = db.Column(db.String(96), nullable=False, index=True)
    voter_id = db.Column(db.String(64), nullable=False)
    vote = db.Column(db.String(8), nullable=False)  # red | blue
    updated_at = db.Column(db.Float, nullable=True)


class Winner(db.Model):
    __tablename__ = 'winner'
    id = db.Column(db.Integer, primary_key=True)
    phase_key = db.Column(db.String(96), nullable=False, unique=True, index=True)
    base_iso = db.Column(db.String(32), nullable=False, index=True)
    round_num = db.Column(db.Integer, nullable=False)
    color = db.Column(db.String(8), nullable=False)
    decided_at = db.Column(db.Float, nullable=True)

    def to_dict(self):
        return {
            'phase_key': self.phase_key,
            'base_iso': self.base_iso,
            'round_num': self.round_num,
            'color': self.color,
        }
