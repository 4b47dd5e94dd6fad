from datetime import datetime
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
import uuid

db = SQLAlchemy()

LEVELS = ('easy', 'medium', 'hard')


class Question(db.Model):
    id = db.Column(db.String, primary_key=True)
    question = db.Column(db.Text, nullable=False)
    options = db.Column(db.JSON, nullable=False, default=list)
    answer = db.Column(db.String, nullable=False)
    level = db.Column(db.String(16), nullable=False, index=True)
    category = db.Column(db.String, default='general')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'question': self.question,
            'options': list(self.options or []),
            'answer': self.answer,
            'level': self.level,
            'category': self.category,
        }


class User(UserMixin, db.Model):
    user_id = db.Column(db.String,
                        primary_key=True,
                        default=lambda: str(uuid.uuid4()))
    username = db.Column(db.String, unique=True, nullable=False)
    # Users created lazily by the question endpoints have no credentials
    email = db.Column(db.String, unique=True, nullable=True)
    password_hash = db.Column(db.String(256), nullable=True)
    answered_question_ids = db.Column(db.JSON, default=list)
    # Last score reported through /api/score
    score = db.Column(db.BigInteger, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_activity = db.Column(db.DateTime, default=datetime.utcnow)

    def __init__(self, username, email=None, password=None, user_id=None):
        self.username = username
        self.email = email
        self.answered_question_ids = []
        self.score = 0
        if user_id:
            self.user_id = user_id
        if password:
            self.set_password(password)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def get_id(self):
        return str(self.user_id)

    def mark_served(self, question_ids):
        """Append ids to the served history, keeping it duplicate free."""
        seen = list(self.answered_question_ids or [])
        known = set(seen)
        for qid in question_ids:
            if qid not in known:
                seen.append(qid)
                known.add(qid)
        # Reassign so the JSON column is flagged dirty
        self.answered_question_ids = seen
        self.last_activity = datetime.utcnow()


class UserStats(db.Model):
    user_id = db.Column(db.String,
                        db.ForeignKey('user.user_id'),
                        primary_key=True)
    username = db.Column(db.String, index=True)
    games_played = db.Column(db.Integer, default=0)
    games_completed = db.Column(db.Integer, default=0)
    total_prize = db.Column(db.BigInteger, default=0)
    questions_answered = db.Column(db.Integer, default=0)
    correct_answers = db.Column(db.Integer, default=0)
    accuracy = db.Column(db.Integer, default=0)
    total_completion_time = db.Column(db.Integer, default=0)  # seconds
    average_completion_time = db.Column(db.Float, default=0.0)
    last_played = db.Column(db.DateTime)

    def to_dict(self):
        return {
            'userId': self.user_id,
            'username': self.username,
            'gamesPlayed': self.games_played,
            'gamesCompleted': self.games_completed,
            'totalPrize': self.total_prize,
            'questionsAnswered': self.questions_answered,
            'correctAnswers': self.correct_answers,
            'accuracy': self.accuracy,
            'averageCompletionTime': self.average_completion_time,
            'lastPlayed': self.last_played.isoformat() if self.last_played else None,
        }


class LeaderboardEntry(db.Model):
    # AUTOINCREMENT keeps SQLite from reusing ids of trimmed rows
    __table_args__ = {'sqlite_autoincrement': True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.String, nullable=False, unique=True)
    player_name = db.Column(db.String, nullable=False)
    prize_won = db.Column(db.BigInteger, nullable=False, default=0)
    questions_answered = db.Column(db.Integer, default=0)
    total_questions = db.Column(db.Integer, default=0)
    completion_date = db.Column(db.DateTime, default=datetime.utcnow)
    completion_time = db.Column(db.Integer, default=0)  # seconds

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'playerName': self.player_name,
            'prizeWon': self.prize_won,
            'questionsAnswered': self.questions_answered,
            'totalQuestions': self.total_questions,
            'completionDate': self.completion_date.isoformat() if self.completion_date else None,
            'completionTime': self.completion_time,
        }
