from datetime import datetime, timezone
import logging

from flask import current_app

from quiztime.models import db, Question, User, UserStats, LeaderboardEntry, LEVELS
from quiztime.services.question_store import FLAT_CATALOG, SqlQuestionStore, normalize_question
from quiztime.services.stats import compute_accuracy, empty_stats
from quiztime.utils.json_store import JsonDocumentStore

logger = logging.getLogger(__name__)


def _documents(documents=None):
    return documents or JsonDocumentStore(current_app.config['DATA_DIR'])


def parse_datetime(value):
    """Parse an ISO timestamp (``Z`` suffix allowed) into naive UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            logger.warning(f"Ignoring unparseable date {value!r}")
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _as_int(value, default=0):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _user_for(username, user_id=None):
    from quiztime.services.progress import get_or_create_user
    return get_or_create_user(username, user_id)


def clear_all():
    """Remove every question, user, stats and leaderboard row."""
    LeaderboardEntry.query.delete()
    UserStats.query.delete()
    User.query.delete()
    Question.query.delete()
    db.session.commit()
    logger.info("Cleared all existing data")


def import_questions(documents=None, default_level=None):
    """
    Load ``easy.json``, ``medium.json``, ``hard.json`` and the flat
    ``questions.json`` into the database, skipping ids already present.

    Args:
        documents (JsonDocumentStore, optional): source directory
        default_level (str, optional): level for flat entries that have none

    Returns:
        int: number of questions added
    """
    documents = _documents(documents)
    questions = []
    skipped = 0
    for level in LEVELS:
        rows = documents.read(level, []) or []
        logger.info(f"Found {len(rows)} {level} questions")
        for raw in rows:
            q = normalize_question(raw, level)
            if q:
                questions.append(q)
            else:
                skipped += 1
    for raw in documents.read(FLAT_CATALOG, []) or []:
        q = normalize_question(raw, default_level)
        if q:
            questions.append(q)
        else:
            skipped += 1

    if skipped:
        logger.warning(f"Skipped {skipped} malformed questions")
    added = SqlQuestionStore().put_many(questions)
    db.session.commit()
    logger.info(f"Imported {added} questions")
    return added


def import_users(documents=None):
    """
    Import ``users.json`` in either layout: ``{"users": [...]}`` records or
    the older ``{username: score}`` map. Passwords are not carried over.
    """
    data = _documents(documents).read('users', None)
    if not data:
        return 0
    if isinstance(data, dict) and isinstance(data.get('users'), list):
        records = data['users']
    elif isinstance(data, dict):
        records = [{'username': name, 'score': score} for name, score in data.items()]
    else:
        records = [{'username': name} for name in data]

    created = 0
    for record in records:
        username = record.get('username')
        if not username:
            continue
        user = User.query.filter_by(username=username).first()
        if user:
            continue
        user = User(username=username,
                    email=record.get('email'),
                    user_id=record.get('userId') or record.get('id'))
        user.created_at = parse_datetime(record.get('createdAt')) or datetime.utcnow()
        user.last_activity = parse_datetime(record.get('lastActivity')) or user.created_at
        user.score = max(_as_int(record.get('score')), 0)
        db.session.add(user)
        created += 1
    db.session.commit()
    logger.info(f"Imported {created} users")
    return created


def import_user_questions(documents=None):
    """Import served-question history from ``user_questions.json``."""
    data = _documents(documents).read('user_questions', None)
    if not isinstance(data, dict):
        return 0
    updated = 0
    for username, question_ids in data.items():
        if not isinstance(question_ids, list):
            continue
        user = _user_for(username)
        user.mark_served(str(qid) for qid in question_ids)
        updated += 1
    db.session.commit()
    logger.info(f"Imported question history for {updated} users")
    return updated


def import_stats(documents=None):
    """
    Import ``stats.json``. The ``{"users": [...]}`` layout carries running
    totals; the older ``{username: {...}}`` layout holds one game per user.
    Existing records are overwritten so re-running the import is harmless.
    """
    data = _documents(documents).read('stats', None)
    if not data:
        return 0

    imported = 0
    if isinstance(data, dict) and isinstance(data.get('users'), list):
        for record in data['users']:
            username = record.get('username')
            if not username:
                continue
            user = _user_for(username, record.get('userId'))
            stats = _stats_for(user)
            stats.games_played = _as_int(record.get('gamesPlayed'))
            stats.games_completed = _as_int(record.get('gamesCompleted'))
            stats.total_prize = _as_int(record.get('totalPrizeMoney', record.get('totalPrize')))
            stats.questions_answered = _as_int(record.get('questionsAnswered'))
            stats.accuracy = _as_int(record.get('accuracy'))
            # Only accuracy was kept, so recover the correct count from it
            stats.correct_answers = int(round(stats.accuracy * stats.questions_answered / 100))
            stats.average_completion_time = float(record.get('averageCompletionTime') or 0)
            stats.total_completion_time = int(stats.average_completion_time * stats.games_played)
            stats.last_played = parse_datetime(record.get('lastPlayed'))
            imported += 1
    else:
        for username, record in data.items():
            if not isinstance(record, dict):
                continue
            user = _user_for(username)
            stats = _stats_for(user)
            stats.games_played = 1
            stats.games_completed = 0
            stats.total_prize = _as_int(record.get('score'))
            stats.questions_answered = _as_int(record.get('questionsAnswered'))
            stats.correct_answers = _as_int(record.get('correctAnswers'))
            stats.accuracy = compute_accuracy(stats.correct_answers, stats.questions_answered)
            stats.total_completion_time = _as_int(record.get('totalTime'))
            stats.average_completion_time = float(stats.total_completion_time)
            stats.last_played = parse_datetime(record.get('lastPlayed'))
            imported += 1

    db.session.commit()
    logger.info(f"Imported stats for {imported} users")
    return imported


def _stats_for(user):
    stats = db.session.get(UserStats, user.user_id)
    if stats is None:
        stats = empty_stats(user.user_id, user.username)
        db.session.add(stats)
    return stats


def normalize_leaderboard_entry(raw):
    """
    Map either leaderboard layout onto submission fields.

    Current layout: ``userId``/``playerName``/``prizeWon``. Older layout:
    ``username``/``score``/``date``, where the username becomes the player
    name, the score becomes the prize and the user id comes from the matching
    user record.
    """
    if not isinstance(raw, dict):
        return None
    if 'prizeWon' in raw:
        user_id = raw.get('userId')
        player_name = raw.get('playerName') or user_id
        if not user_id and player_name:
            user_id = _user_for(player_name).user_id
        prize = raw.get('prizeWon')
        completion_date = raw.get('completionDate')
        completion_time = raw.get('completionTime')
        total_questions = raw.get('totalQuestions')
    elif 'score' in raw and raw.get('username'):
        player_name = raw['username']
        user_id = _user_for(player_name).user_id
        prize = raw.get('score')
        completion_date = raw.get('date')
        completion_time = raw.get('totalTime')
        total_questions = raw.get('questionsAnswered')
    else:
        return None
    if not user_id:
        return None
    return {
        'user_id': str(user_id),
        'player_name': player_name,
        'prize_won': max(_as_int(prize), 0),
        'questions_answered': _as_int(raw.get('questionsAnswered')),
        'total_questions': _as_int(total_questions),
        'completion_date': parse_datetime(completion_date) or datetime.utcnow(),
        'completion_time': _as_int(completion_time),
    }


def import_leaderboard(documents=None):
    """
    Merge ``leaderboard.json`` into the leaderboard through the normal
    submission rules.

    Returns:
        int: entries on the leaderboard afterwards
    """
    from quiztime.services.leaderboard import submit

    data = _documents(documents).read('leaderboard', None)
    if not data:
        return 0
    rows = data.get('leaderboard', []) if isinstance(data, dict) else data
    for raw in rows:
        entry = normalize_leaderboard_entry(raw)
        if entry:
            submit(entry, commit=False)
    db.session.commit()
    return LeaderboardEntry.query.count()


def import_all(documents=None, clear=False):
    documents = _documents(documents)
    if clear:
        clear_all()
    summary = {
        'questions': import_questions(documents),
        'users': import_users(documents),
        'user_questions': import_user_questions(documents),
        'stats': import_stats(documents),
        'leaderboard': import_leaderboard(documents),
    }
    logger.info(f"Import summary: {summary}")
    return summary
