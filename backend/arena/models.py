from arena import db, bcrypt
from flask_login import UserMixin

KIND_COMPUTER = 'computer'
KIND_HUMAN = 'human'
MATCH_KINDS = (KIND_COMPUTER, KIND_HUMAN)

STATE_WAITING = 'waiting'
STATE_ACTIVE = 'active'
STATE_FINISHED = 'finished'
OPEN_STATES = (STATE_WAITING, STATE_ACTIVE)


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    # Only ever incremented
    played = db.Column(db.Integer, default=0, nullable=False)
    won = db.Column(db.Integer, default=0, nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'played': self.played,
            'won': self.won,
        }


class Match(db.Model):
    __tablename__ = 'matches'
    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False)  # computer, human
    state = db.Column(db.String(16), nullable=False, default=STATE_WAITING, index=True)  # waiting, active, finished
    player1_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    # Stays empty for computer matches
    player2_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, index=True)
    score1 = db.Column(db.Integer, default=0, nullable=False)
    score2 = db.Column(db.Integer, default=0, nullable=False)
    winner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())

    player1 = db.relationship('User', foreign_keys=[player1_id])
    player2 = db.relationship('User', foreign_keys=[player2_id])
    winner = db.relationship('User', foreign_keys=[winner_id])

    def slot_of(self, account_id):
        """Return 1 or 2 for a participant, None for anyone else."""
        if self.player1_id == account_id:
            return 1
        if self.player2_id is not None and self.player2_id == account_id:
            return 2
        return None

    def opponent_of(self, account_id):
        if self.player1_id == account_id:
            return self.player2_id
        if self.player2_id == account_id:
            return self.player1_id
        return None

    def to_dict(self):
        return {
            'matchId': self.id,
            'kind': self.kind,
            'state': self.state,
            'player1Id': self.player1_id,
            'player2Id': self.player2_id,
            'scores': {'player1': self.score1, 'player2': self.score2},
            'winnerId': self.winner_id,
        }
