"""Printable result reports for students and teachers."""

from __future__ import annotations

from dataclasses import dataclass

from quizpin.core.markdown_renderer import MarkdownRenderer, renderer as default_renderer
from quizpin.core.models import QuizDefinition, ScoredSubmission

PASS_PERCENTAGE = 60
EXCELLENT_PERCENTAGE = 80


@dataclass(slots=True)
class ClassSummary:
    """Aggregate statistics over every submission of one quiz."""

    student_count: int
    average_percentage: float
    passed_count: int
    excellent_count: int
    auto_submitted_count: int


def summarize_submissions(submissions: list[ScoredSubmission]) -> ClassSummary:
    count = len(submissions)
    average = sum(s.percentage for s in submissions) / count if count else 0.0
    return ClassSummary(
        student_count=count,
        average_percentage=average,
        passed_count=sum(1 for s in submissions if s.percentage >= PASS_PERCENTAGE),
        excellent_count=sum(1 for s in submissions if s.percentage >= EXCELLENT_PERCENTAGE),
        auto_submitted_count=sum(1 for s in submissions if s.was_auto_submitted),
    )


def format_duration(seconds: int | None) -> str:
    if seconds is None:
        return "n/a"
    minutes, rest = divmod(seconds, 60)
    return f"{minutes}m {rest}s" if minutes else f"{rest}s"


def _cell(text: str) -> str:
    # Keep table rows intact when answers contain pipes or line breaks.
    return text.replace("|", "\\|").replace("\n", " ")


def _quiz_header(quiz: QuizDefinition) -> list[str]:
    lines = [f"**Quiz:** {quiz.title}  "]
    if quiz.school_name:
        lines.append(f"**School:** {quiz.school_name}  ")
    if quiz.teacher_name:
        lines.append(f"**Teacher:** {quiz.teacher_name}  ")
    if quiz.major:
        lines.append(f"**Subject:** {quiz.major}  ")
    return lines


def build_student_report(quiz: QuizDefinition, submission: ScoredSubmission) -> str:
    """Markdown report for a single submission."""
    lines = ["# Quiz Results", ""]
    lines.extend(_quiz_header(quiz))
    lines.extend(
        [
            f"**Student:** {submission.user_name}  ",
            f"**Score:** {submission.score}/{submission.total_questions} ({submission.percentage}%)  ",
            f"**Time spent:** {format_duration(submission.time_spent_seconds)}",
        ]
    )
    if submission.was_auto_submitted:
        lines.append("")
        lines.append("_Submitted automatically when the time limit was reached._")
    lines.extend(["", "## Detailed Results", ""])
    if not submission.results:
        lines.append("This quiz has no questions.")
        return "\n".join(lines)

    lines.append("| # | Question | Your answer | Correct answer | Result |")
    lines.append("|---|---|---|---|---|")
    for result in submission.results:
        mark = "Correct" if result.is_correct else "Incorrect"
        lines.append(
            f"| {result.question_index + 1} | {_cell(result.question_text)} "
            f"| {_cell(result.user_answer_text)} | {_cell(result.correct_answer_text)} | {mark} |"
        )
    return "\n".join(lines)


def build_class_report(quiz: QuizDefinition, submissions: list[ScoredSubmission]) -> str:
    """Markdown summary of all participants of a quiz."""
    summary = summarize_submissions(submissions)
    lines = ["# Class Results Summary", ""]
    lines.extend(_quiz_header(quiz))
    lines.extend(
        [
            f"**Total questions:** {quiz.question_count}  ",
            f"**Total students:** {summary.student_count}",
            "",
            "## Class Statistics",
            "",
            f"- Average score: {summary.average_percentage:.1f}%",
            f"- Students passed (>= {PASS_PERCENTAGE}%): {summary.passed_count}/{summary.student_count}",
            f"- Excellent performance (>= {EXCELLENT_PERCENTAGE}%): "
            f"{summary.excellent_count}/{summary.student_count}",
            f"- Auto-submitted: {summary.auto_submitted_count}",
            "",
            "## Individual Results",
            "",
        ]
    )
    if not submissions:
        lines.append("No submissions yet.")
        return "\n".join(lines)
    lines.append("| Student | Score | Percentage | Time |")
    lines.append("|---|---|---|---|")
    for submission in submissions:
        lines.append(
            f"| {_cell(submission.user_name)} | {submission.score}/{submission.total_questions} "
            f"| {submission.percentage}% | {format_duration(submission.time_spent_seconds)} |"
        )
    return "\n".join(lines)


def render_student_report_html(
    quiz: QuizDefinition,
    submission: ScoredSubmission,
    markdown: MarkdownRenderer = default_renderer,
) -> str:
    return markdown.render_report(
        build_student_report(quiz, submission), title=f"{quiz.title} - {submission.user_name}"
    )


def render_class_report_html(
    quiz: QuizDefinition,
    submissions: list[ScoredSubmission],
    markdown: MarkdownRenderer = default_renderer,
) -> str:
    return markdown.render_report(build_class_report(quiz, submissions), title=f"{quiz.title} - results")
