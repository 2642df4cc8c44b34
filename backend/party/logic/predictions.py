"""Predictions scoring.

Scoring strategies share one contract:

    (entries by participant, resolved answers, questions) -> {participant_id: score}

Only submitted entries are scored. Answers to unknown questions, or to
questions without a resolved answer, are skipped. Scores are on a 0-100 scale.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from pydantic import Field

from party.logic.enums import AccuracyTier, QuestionType, ScoringStrategy
from party.logic.exceptions import InvalidPredictionError
from party.logic.state import PredictionAnswer
from shared.dal.models import DocumentModel

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping, Sequence

    from party.logic.state import PredictionEntry, PredictionQuestion, RosterEntry

    ScoreFunction = Callable[
        [Mapping[str, PredictionEntry], Mapping[str, PredictionAnswer], Sequence[PredictionQuestion]],
        dict[str, float],
    ]

PERFECT_SCORE = 100.0

_TYPE_WEIGHTS = {QuestionType.YESNO: 1.0, QuestionType.NUMBER: 1.5}

_ACCURACY_TIERS = (
    (90.0, AccuracyTier.ON_FIRE),
    (75.0, AccuracyTier.BULLSEYE),
    (60.0, AccuracyTier.SOLID),
    (40.0, AccuracyTier.FAIR),
)


def linear_answer_score(question: PredictionQuestion, answer: PredictionAnswer, correct: PredictionAnswer) -> float:
    """100 for a correct yes/no; linear proximity over the question's range for numbers."""
    if question.type == QuestionType.YESNO:
        return PERFECT_SCORE if bool(answer) == bool(correct) else 0.0
    span = question.max_value - question.min_value
    distance = abs(float(answer) - float(correct))
    return max(0.0, (1 - distance / span) * PERFECT_SCORE)


def gaussian_answer_score(question: PredictionQuestion, answer: PredictionAnswer, correct: PredictionAnswer) -> float:
    """Like linear, but numbers decay along a Gaussian with sigma = range / 4."""
    if question.type == QuestionType.YESNO:
        return linear_answer_score(question, answer, correct)
    sigma = (question.max_value - question.min_value) / 4
    distance = abs(float(answer) - float(correct))
    return math.exp(-(distance * distance) / (2 * sigma * sigma)) * PERFECT_SCORE


def _scored_answers(
    entry: PredictionEntry,
    results: Mapping[str, PredictionAnswer],
    by_id: Mapping[str, PredictionQuestion],
) -> Iterator[tuple[PredictionQuestion, PredictionAnswer, PredictionAnswer]]:
    for question_id, answer in entry.answers.items():
        question = by_id.get(question_id)
        if question is None or question_id not in results:
            continue
        yield question, answer, results[question_id]


def _mean_scores(
    entries: Mapping[str, PredictionEntry],
    results: Mapping[str, PredictionAnswer],
    questions: Sequence[PredictionQuestion],
    answer_score: Callable[[PredictionQuestion, PredictionAnswer, PredictionAnswer], float],
    weights: Mapping[QuestionType, float] | None = None,
) -> dict[str, float]:
    by_id = {q.id: q for q in questions}
    scores: dict[str, float] = {}
    for participant_id, entry in entries.items():
        if not entry.submitted:
            continue
        total = 0.0
        total_weight = 0.0
        for question, answer, correct in _scored_answers(entry, results, by_id):
            weight = weights[question.type] if weights else 1.0
            total += answer_score(question, answer, correct) * weight
            total_weight += weight
        scores[participant_id] = total / total_weight if total_weight else 0.0
    return scores


def linear_scores(
    entries: Mapping[str, PredictionEntry],
    results: Mapping[str, PredictionAnswer],
    questions: Sequence[PredictionQuestion],
) -> dict[str, float]:
    """Unweighted mean of linear per-answer scores."""
    return _mean_scores(entries, results, questions, linear_answer_score)


def weighted_scores(
    entries: Mapping[str, PredictionEntry],
    results: Mapping[str, PredictionAnswer],
    questions: Sequence[PredictionQuestion],
) -> dict[str, float]:
    """Linear per-answer scores, number questions weighted 1.5 against yes/no 1.0."""
    return _mean_scores(entries, results, questions, linear_answer_score, _TYPE_WEIGHTS)


def gaussian_scores(
    entries: Mapping[str, PredictionEntry],
    results: Mapping[str, PredictionAnswer],
    questions: Sequence[PredictionQuestion],
) -> dict[str, float]:
    return _mean_scores(entries, results, questions, gaussian_answer_score)


SCORING_STRATEGIES: dict[ScoringStrategy, ScoreFunction] = {
    ScoringStrategy.LINEAR: linear_scores,
    ScoringStrategy.WEIGHTED: weighted_scores,
    ScoringStrategy.GAUSSIAN: gaussian_scores,
}


def score_predictions(
    entries: Mapping[str, PredictionEntry],
    results: Mapping[str, PredictionAnswer],
    questions: Sequence[PredictionQuestion],
    strategy: ScoringStrategy = ScoringStrategy.LINEAR,
) -> dict[str, float]:
    return SCORING_STRATEGIES[strategy](entries, results, questions)


def pick_winner(scores: Mapping[str, float]) -> str | None:
    """Participant with the strictly highest score.

    Ties go to whichever tied participant comes first in iteration order.
    """
    winner = None
    best = -1.0
    for participant_id, score in scores.items():
        if score > best:
            best = score
            winner = participant_id
    return winner


def accuracy_tier(score: float) -> AccuracyTier:
    for threshold, tier in _ACCURACY_TIERS:
        if score >= threshold:
            return tier
    return AccuracyTier.LUCKY_GUESS


def format_accuracy(score: float) -> str:
    return f"{score:.1f}%"


class LeaderboardEntry(DocumentModel):
    rank: int
    participant_id: str
    name: str
    score: float
    display: str
    tier: AccuracyTier


def leaderboard(scores: Mapping[str, float], participants: Sequence[RosterEntry]) -> list[LeaderboardEntry]:
    """Rank scored roster members, best first. Scores for unknown ids are dropped."""
    names = {p.id: p.name for p in participants}
    ranked = sorted(
        ((pid, score) for pid, score in scores.items() if pid in names),
        key=lambda item: item[1],
        reverse=True,
    )
    return [
        LeaderboardEntry(
            rank=position,
            participant_id=pid,
            name=names[pid],
            score=score,
            display=format_accuracy(score),
            tier=accuracy_tier(score),
        )
        for position, (pid, score) in enumerate(ranked, start=1)
    ]


class QuestionStats(DocumentModel):
    question_id: str
    text: str
    type: QuestionType
    correct_answer: PredictionAnswer
    answers: tuple[PredictionAnswer, ...] = ()
    correct_count: int = 0


class PredictionStatistics(DocumentModel):
    total_participants: int = 0
    submitted_count: int = 0
    average_accuracy: float = 0.0
    # submitters who hit every scored question exactly
    perfect_predictions: int = 0
    questions: dict[str, QuestionStats] = Field(default_factory=dict)


def prediction_statistics(
    entries: Mapping[str, PredictionEntry],
    results: Mapping[str, PredictionAnswer],
    questions: Sequence[PredictionQuestion],
) -> PredictionStatistics:
    by_id = {q.id: q for q in questions}
    answers: dict[str, list[PredictionAnswer]] = {}
    correct_counts: dict[str, int] = {}
    accuracy_total = 0.0
    submitted = 0
    perfect = 0

    for entry in entries.values():
        if not entry.submitted:
            continue
        submitted += 1
        entry_total = 0.0
        counted = 0
        exact = 0
        for question, answer, correct in _scored_answers(entry, results, by_id):
            score = linear_answer_score(question, answer, correct)
            answers.setdefault(question.id, []).append(answer)
            if score == PERFECT_SCORE:
                exact += 1
                correct_counts[question.id] = correct_counts.get(question.id, 0) + 1
            entry_total += score
            counted += 1
        accuracy_total += entry_total / counted if counted else 0.0
        if counted and exact == counted:
            perfect += 1

    question_stats = {
        qid: QuestionStats(
            question_id=qid,
            text=by_id[qid].text,
            type=by_id[qid].type,
            correct_answer=results[qid],
            answers=tuple(given),
            correct_count=correct_counts.get(qid, 0),
        )
        for qid, given in answers.items()
    }
    return PredictionStatistics(
        total_participants=len(entries),
        submitted_count=submitted,
        average_accuracy=accuracy_total / submitted if submitted else 0.0,
        perfect_predictions=perfect,
        questions=question_stats,
    )


def _check_answer(question: PredictionQuestion, value: object) -> PredictionAnswer:
    if question.type == QuestionType.YESNO:
        if not isinstance(value, bool):
            raise InvalidPredictionError(f"question {question.id} expects yes or no")
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidPredictionError(f"question {question.id} expects a number")
    if not question.min_value <= value <= question.max_value:
        raise InvalidPredictionError(
            f"question {question.id} expects a value between {question.min_value:g} and {question.max_value:g}",
        )
    return float(value)


def validate_answers(
    questions: Sequence[PredictionQuestion],
    answers: Mapping[str, object],
) -> dict[str, PredictionAnswer]:
    """Every question must be answered with a value of its type; extra keys are rejected."""
    by_id = {q.id: q for q in questions}
    unknown = set(answers) - set(by_id)
    if unknown:
        raise InvalidPredictionError(f"unknown questions: {', '.join(sorted(unknown))}")
    missing = [q.id for q in questions if q.id not in answers]
    if missing:
        raise InvalidPredictionError(f"unanswered questions: {', '.join(missing)}")
    return {q.id: _check_answer(q, answers[q.id]) for q in questions}
