"""Tests for the printable reports."""

from conftest import make_quiz
from quizpin.core.markdown_renderer import MarkdownRenderer
from quizpin.core.models import UNANSWERED
from quizpin.core.report_renderer import (
    build_class_report,
    build_student_report,
    format_duration,
    render_student_report_html,
    summarize_submissions,
)
from quizpin.core.services.scoring import ScoringService


def test_student_report_lists_every_question(repository, stored_quiz) -> None:
    submission = ScoringService(repository).submit(
        stored_quiz.id, "Ada", [0, 2, 2, UNANSWERED], time_spent_seconds=30, was_auto_submitted=True
    )

    report = build_student_report(stored_quiz, submission)

    assert "**Score:** 2/4 (50%)" in report
    assert "Submitted automatically" in report
    assert "| 4 | Question 3 | No answer | Q3 answer 3 | Incorrect |" in report
    assert "| 1 | Question 0 | Q0 answer 0 | Q0 answer 0 | Correct |" in report


def test_html_report_is_a_full_document(repository, stored_quiz) -> None:
    submission = ScoringService(repository).submit(stored_quiz.id, "Ada", [0, 1, 2, 3])
    html = render_student_report_html(stored_quiz, submission)
    assert html.startswith("<!doctype html>")
    assert "<table>" in html


def test_summary_of_no_submissions_avoids_division() -> None:
    summary = summarize_submissions([])
    assert summary.student_count == 0
    assert summary.average_percentage == 0.0
    assert "No submissions yet." in build_class_report(make_quiz(), [])


def test_summary_counts_pass_and_excellent(repository, stored_quiz) -> None:
    service = ScoringService(repository)
    submissions = [
        service.submit(stored_quiz.id, "Ada", [0, 1, 2, 3]),
        service.submit(stored_quiz.id, "Bo", [0, 1, 2, 0]),
        service.submit(stored_quiz.id, "Cy", [0, 0, 0, 0]),
    ]

    summary = summarize_submissions(submissions)

    assert summary.passed_count == 2
    assert summary.excellent_count == 1
    assert summary.average_percentage == (100 + 75 + 25) / 3


def test_format_duration() -> None:
    assert format_duration(None) == "n/a"
    assert format_duration(42) == "42s"
    assert format_duration(125) == "2m 5s"


def test_report_page_escapes_title_and_raw_html() -> None:
    html = MarkdownRenderer().render_report("# Results\n\n<script>x</script>", title="A & B <1>")
    assert "<title>A &amp; B &lt;1&gt;</title>" in html
    assert "<script>x</script>" not in html
    assert "<h1>Results</h1>" in html


def test_question_rendering() -> None:
    markdown = MarkdownRenderer()
    assert markdown.render_question("  ") == ""
    assert markdown.render_question("What is $x^2$?") == "<p>What is $x^2$?</p>\n"
