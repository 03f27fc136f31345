"""Authoritative, server-side scoring of submitted answers."""

from __future__ import annotations

from datetime import datetime
import logging

from quizpin.core.errors import ValidationError
from quizpin.core.models import QuestionResult, QuizDefinition, ScoredSubmission
from quizpin.core.services.quiz_repository import QuizRepository

logger = logging.getLogger(__name__)


def compute_percentage(score: int, total_questions: int) -> int:
    """Percentage rounded half-up; 0 for an empty quiz."""
    if total_questions <= 0:
        return 0
    return (200 * score + total_questions) // (2 * total_questions)


def score_answers(
    quiz: QuizDefinition, answers: list[int]
) -> tuple[int, int, list[QuestionResult]]:
    """Score ``answers`` (canonical order) against the quiz's answer keys.

    Returns ``(score, percentage, results)``. The unanswered sentinel never
    matches a valid index, so it always counts as incorrect.
    """
    if len(answers) != quiz.question_count:
        raise ValidationError(
            f"Expected {quiz.question_count} answers, received {len(answers)}."
        )
    if not quiz.has_answer_keys():
        raise ValidationError("Quiz definition is missing answer keys.")

    results: list[QuestionResult] = []
    for index, (question, user_answer) in enumerate(zip(quiz.questions, answers)):
        correct_index = question.correct_answer_index
        results.append(
            QuestionResult(
                question_index=index,
                question_text=question.text,
                user_answer_index=user_answer,
                user_answer_text=question.answer_text(user_answer),
                correct_answer_index=correct_index,
                correct_answer_text=question.answers[correct_index],
                is_correct=user_answer == correct_index,
            )
        )
    score = sum(1 for result in results if result.is_correct)
    return score, compute_percentage(score, quiz.question_count), results


class ScoringService:
    """Scores a submission and persists it through the repository."""

    def __init__(self, repository: QuizRepository) -> None:
        self._repository = repository

    def submit(
        self,
        quiz_id: str,
        user_name: str,
        answers: list[int],
        time_spent_seconds: int | None = None,
        was_auto_submitted: bool = False,
        submission_token: str | None = None,
    ) -> ScoredSubmission:
        cleaned_name = (user_name or "").strip()
        if not cleaned_name:
            raise ValidationError("User name is required.")
        if time_spent_seconds is not None and time_spent_seconds < 0:
            raise ValidationError("Time spent cannot be negative.")

        quiz = self._repository.get_quiz_with_answer_keys(quiz_id)
        score, percentage, results = score_answers(quiz, list(answers))
        submission = ScoredSubmission(
            quiz_id=quiz.id,
            user_name=cleaned_name,
            answers=list(answers),
            score=score,
            total_questions=quiz.question_count,
            percentage=percentage,
            results=results,
            submitted_at=datetime.utcnow(),
            time_spent_seconds=time_spent_seconds,
            was_auto_submitted=was_auto_submitted,
            submission_token=submission_token,
        )
        submission_id = self._repository.append_submission(quiz.id, submission)
        logger.info(
            "Stored submission %s for quiz %s (%s: %d/%d, auto=%s)",
            submission_id,
            quiz.id,
            cleaned_name,
            score,
            quiz.question_count,
            was_auto_submitted,
        )
        return self._repository.get_submission(submission_id)
