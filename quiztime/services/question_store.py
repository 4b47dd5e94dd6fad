import logging

from flask import current_app

from quiztime.models import db, Question, LEVELS
from quiztime.utils.json_store import JsonDocumentStore

logger = logging.getLogger(__name__)

# Flat catalogue document whose entries carry their own level
FLAT_CATALOG = 'questions'


def normalize_question(raw, level=None):
    """
    Coerce a raw catalogue row into the canonical question dict.

    Returns None for rows missing required fields so importers can skip them.
    """
    if not isinstance(raw, dict):
        return None
    qid = raw.get('id')
    text = raw.get('question')
    options = raw.get('options')
    answer = raw.get('answer')
    row_level = raw.get('level') or level
    if qid is None or not text or not isinstance(options, list) or answer is None:
        return None
    if row_level not in LEVELS:
        return None
    return {
        'id': str(qid),
        'question': text,
        'options': [str(o) for o in options],
        'answer': str(answer),
        'level': row_level,
        'category': raw.get('category') or 'general',
    }


class QuestionStore:
    """Read/query interface shared by the primary and secondary catalogues."""

    def get(self, question_id, level=None):
        raise NotImplementedError

    def all(self, level=None):
        raise NotImplementedError

    def query_excluding(self, level, excluded_ids, limit):
        raise NotImplementedError


class SqlQuestionStore(QuestionStore):

    def get(self, question_id, level=None):
        query = Question.query.filter_by(id=str(question_id))
        if level:
            query = query.filter_by(level=level)
        question = query.first()
        return question.to_dict() if question else None

    def all(self, level=None):
        query = Question.query
        if level:
            query = query.filter_by(level=level)
        return [q.to_dict() for q in query.order_by(Question.created_at, Question.id).all()]

    def query_excluding(self, level, excluded_ids, limit):
        if limit <= 0:
            return []
        query = Question.query.filter(Question.level == level)
        if excluded_ids:
            query = query.filter(Question.id.notin_(list(excluded_ids)))
        rows = query.order_by(Question.created_at, Question.id).limit(limit).all()
        return [q.to_dict() for q in rows]

    def count(self):
        return Question.query.count()

    def put_many(self, questions):
        """
        Add questions not already stored. Existing ids are skipped, so replaying
        the same batch is harmless. Does not commit.
        """
        by_id = {}
        for q in questions:
            by_id.setdefault(q['id'], q)
        if not by_id:
            return 0

        existing = {
            qid for (qid, ) in db.session.query(Question.id).filter(
                Question.id.in_(list(by_id.keys())))
        }
        added = 0
        for qid, q in by_id.items():
            if qid in existing:
                continue
            db.session.add(Question(id=qid,
                                    question=q['question'],
                                    options=q['options'],
                                    answer=q['answer'],
                                    level=q['level'],
                                    category=q.get('category', 'general')))
            added += 1
        if added:
            logger.info(f"Queued {added} new questions for the primary store")
        return added


class JsonQuestionStore(QuestionStore):
    """
    Read-only catalogue backed by ``<level>.json`` files plus the flat
    ``questions.json`` document.
    """

    def __init__(self, documents):
        self.documents = documents

    def _load(self, level=None):
        levels = [level] if level else list(LEVELS)
        rows = []
        for lvl in levels:
            for raw in self.documents.read(lvl, []) or []:
                q = normalize_question(raw, lvl)
                if q:
                    rows.append(q)
        for raw in self.documents.read(FLAT_CATALOG, []) or []:
            q = normalize_question(raw)
            if q and (level is None or q['level'] == level):
                rows.append(q)
        return rows

    def get(self, question_id, level=None):
        question_id = str(question_id)
        for q in self._load(level):
            if q['id'] == question_id:
                return q
        return None

    def all(self, level=None):
        return self._load(level)

    def query_excluding(self, level, excluded_ids, limit):
        if limit <= 0:
            return []
        excluded = set(excluded_ids or ())
        selected = []
        seen = set()
        for q in self._load(level):
            if q['id'] in excluded or q['id'] in seen:
                continue
            selected.append(q)
            seen.add(q['id'])
            if len(selected) >= limit:
                break
        return selected


def primary_store():
    return SqlQuestionStore()


def secondary_store():
    return JsonQuestionStore(JsonDocumentStore(current_app.config['DATA_DIR']))


def find_question(question_id, level):
    """Look a question up in the primary store, then the JSON catalogue."""
    question = primary_store().get(question_id, level)
    if question is None:
        question = secondary_store().get(question_id, level)
    return question


def load_catalog():
    """The full catalogue, from the JSON files only when the database is empty."""
    catalog = primary_store().all()
    if not catalog:
        logger.info("Primary question store is empty, reading JSON catalogue")
        catalog = secondary_store().all()
    return catalog
