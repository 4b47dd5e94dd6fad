import logging
import random

logger = logging.getLogger(__name__)

# (level, time limit in seconds, prize per position)
TIERS = (
    ('easy', 10, (1000, 2000, 3000)),
    ('medium', 20, (5000, 10000, 20000, 50000, 100000, 200000)),
    ('hard', 30, (500000, 1000000, 5000000, 10000000, 50000000,
                  100000000, 700000000)),
)

GAME_LENGTH = sum(len(prizes) for _, _, prizes in TIERS)


def position_ladder():
    """One (level, time_limit, prize) tuple per question position, in order."""
    ladder = []
    for level, time_limit, prizes in TIERS:
        for prize in prizes:
            ladder.append((level, time_limit, prize))
    return ladder


def game_structure():
    structure = {}
    first = 1
    for level, time_limit, prizes in TIERS:
        last = first + len(prizes) - 1
        structure[level] = {
            'questions': f"{first}-{last}",
            'count': len(prizes),
            'timeLimit': time_limit,
            'prizes': list(prizes),
        }
        first = last + 1
    return structure


def answer_index(question):
    try:
        return question['options'].index(question['answer'])
    except (KeyError, ValueError, AttributeError):
        return None


def build_game_session(catalog, rng=None):
    """
    Assemble an ordered game of up to ``GAME_LENGTH`` questions.

    Questions are drawn at random from the whole catalogue and get their level,
    time limit and prize from the position they land in, not from their own
    metadata. Ids already used are skipped, and a catalogue that runs out
    simply yields a shorter game.

    Args:
        catalog (list): question dicts with ``id``, ``question``, ``options``
            and ``answer``
        rng (random.Random, optional): randomness source, for repeatable tests

    Returns:
        list: question dicts ready to send to the client
    """
    rng = rng or random.Random()
    pool = list(catalog)
    rng.shuffle(pool)

    chosen = []
    chosen_ids = set()
    for question in pool:
        if len(chosen) >= GAME_LENGTH:
            break
        if question['id'] in chosen_ids:
            continue
        index = answer_index(question)
        if index is None:
            logger.warning(f"Skipping question {question['id']}: answer is not one of its options")
            continue
        chosen.append((question, index))
        chosen_ids.add(question['id'])

    if len(chosen) < GAME_LENGTH:
        logger.warning(f"Catalogue only had {len(chosen)} usable questions for a {GAME_LENGTH} question game")

    session = []
    for number, ((question, index), (level, time_limit, prize)) in enumerate(
            zip(chosen, position_ladder()), start=1):
        session.append({
            'id': question['id'],
            'question': question['question'],
            'options': list(question['options']),
            'answerIndex': index,
            'questionNumber': number,
            'timeLimit': time_limit,
            'level': level,
            'prizeValue': prize,
        })
    return session
