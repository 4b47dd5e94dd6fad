from datetime import datetime
from operator import attrgetter
import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from quiztime.errors import StorageUnavailableError, ValidationError
from quiztime.models import db, LeaderboardEntry
from quiztime.services.locks import get_locks, LEADERBOARD_KEY

logger = logging.getLogger(__name__)

LEADERBOARD_SIZE = 100

ENTRY_FIELDS = ('user_id', 'player_name', 'prize_won', 'questions_answered',
                'total_questions', 'completion_date', 'completion_time')


def merge_ranked(entries, candidate, key, score, limit=LEADERBOARD_SIZE,
                 sort_key=None, replace=None):
    """
    Merge one submission into a ranked list.

    The candidate replaces the entry with the same key only when its score is
    strictly higher; otherwise the stored entry stands. The list is then
    re-sorted best first and cut to ``limit``.

    Args:
        entries (list): current entries, best first
        candidate: the submitted entry
        key (callable): identity of an entry (one entry per key)
        score (callable): ranking value, higher is better
        limit (int): how many entries survive
        sort_key (callable, optional): full ordering; defaults to a stable sort
            on ``score`` so ties keep their existing order
        replace (callable, optional): ``replace(existing, candidate)`` returning
            the entry that takes the slot; defaults to the candidate itself

    Returns:
        tuple: (kept entries, dropped entries, entry now holding the key)
    """
    ranked = list(entries)
    candidate_key = key(candidate)
    position = next((i for i, e in enumerate(ranked) if key(e) == candidate_key), None)

    if position is None:
        ranked.append(candidate)
        current = candidate
    elif score(candidate) > score(ranked[position]):
        current = replace(ranked[position], candidate) if replace else candidate
        ranked[position] = current
    else:
        current = ranked[position]

    ranked.sort(key=sort_key or (lambda e: -score(e)))
    return ranked[:limit], ranked[limit:], current


def rank_of(kept, entry):
    """1-based position of ``entry`` (by identity) in ``kept``, or None."""
    for position, e in enumerate(kept, start=1):
        if e is entry:
            return position
    return None


def _db_order(entry):
    # Best prize first, then earliest insert; unsaved rows sort last
    return (-entry.prize_won, entry.id if entry.id is not None else float('inf'))


def _overwrite(existing, candidate):
    for field in ENTRY_FIELDS:
        setattr(existing, field, getattr(candidate, field))
    return existing


def _leaderboard_size():
    return current_app.config.get('LEADERBOARD_SIZE', LEADERBOARD_SIZE)


def _validate(entry):
    if not entry.get('user_id'):
        raise ValidationError("user_id is required")
    prize = entry.get('prize_won')
    if isinstance(prize, bool) or not isinstance(prize, int) or prize < 0:
        raise ValidationError("prize_won must be a non-negative integer")


def submit(entry, commit=True):
    """
    Submit a result for ranking.

    Args:
        entry (dict): ``user_id``, ``player_name``, ``prize_won`` and optionally
            ``questions_answered``, ``total_questions``, ``completion_date``,
            ``completion_time``
        commit (bool): False when the caller commits as part of a wider write

    Returns:
        int or None: the user's 1-based rank, or None when outside the top list
    """
    _validate(entry)
    candidate = LeaderboardEntry(
        user_id=entry['user_id'],
        player_name=entry.get('player_name') or entry['user_id'],
        prize_won=entry['prize_won'],
        questions_answered=entry.get('questions_answered', 0),
        total_questions=entry.get('total_questions', 0),
        completion_date=entry.get('completion_date') or datetime.utcnow(),
        completion_time=entry.get('completion_time', 0))

    with get_locks().hold(LEADERBOARD_KEY):
        try:
            entries = LeaderboardEntry.query.order_by(
                LeaderboardEntry.prize_won.desc(),
                LeaderboardEntry.id.asc()).with_for_update().populate_existing().all()

            kept, dropped, current = merge_ranked(entries,
                                                  candidate,
                                                  key=attrgetter('user_id'),
                                                  score=attrgetter('prize_won'),
                                                  limit=_leaderboard_size(),
                                                  sort_key=_db_order,
                                                  replace=_overwrite)

            rank = rank_of(kept, current)
            if current is candidate and rank is not None:
                db.session.add(candidate)
            for stale in dropped:
                if stale is not candidate:
                    db.session.delete(stale)

            if dropped:
                logger.info(f"Trimmed {len(dropped)} entries from the leaderboard")
            if commit:
                db.session.commit()
            logger.info(f"Leaderboard submission for {entry['user_id']} "
                        f"({entry['prize_won']}): rank {rank or 'unranked'}")
            return rank
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error updating leaderboard: {e}")
            raise StorageUnavailableError("Could not update the leaderboard")


def get_leaderboard():
    """
    Snapshot of the ranked list as dicts.

    An empty table is first filled from a legacy ``leaderboard.json`` when one
    is present in the data directory.
    """
    entries = _ranked_entries()
    if not entries:
        from quiztime.utils.importer import import_leaderboard
        with get_locks().hold(LEADERBOARD_KEY):
            if LeaderboardEntry.query.count() == 0:
                imported = import_leaderboard()
                if imported:
                    logger.info(f"Loaded {imported} leaderboard entries from JSON")
        entries = _ranked_entries()
    return [e.to_dict() for e in entries]


def _ranked_entries():
    return LeaderboardEntry.query.order_by(
        LeaderboardEntry.prize_won.desc(),
        LeaderboardEntry.id.asc()).limit(_leaderboard_size()).all()


def trim_leaderboard(commit=True):
    """Delete rows beyond the configured size, e.g. after lowering it."""
    with get_locks().hold(LEADERBOARD_KEY):
        overflow = LeaderboardEntry.query.order_by(
            LeaderboardEntry.prize_won.desc(),
            LeaderboardEntry.id.asc()).offset(_leaderboard_size()).all()
        for entry in overflow:
            db.session.delete(entry)
        if commit:
            db.session.commit()
        return len(overflow)
