"""
Unit tests for question-set and evaluation extraction.
"""
import json

import pytest

from schemas import SENTINEL_FEEDBACK
from text_extractor import (
    QUESTION_SET_SIZE,
    extract_evaluation,
    extract_questions,
    fallback_questions,
    parse_question_array,
    parse_question_list,
)


def _items(n: int) -> list[dict]:
    return [{"question": f"Question {i}?", "answer": f"Answer {i}."} for i in range(1, n + 1)]


class TestQuestionArray:
    def test_exact_five_items_in_order(self, job):
        text = json.dumps(_items(5))
        pairs = extract_questions(text, job)
        assert [p.question for p in pairs] == [f"Question {i}?" for i in range(1, 6)]
        assert [p.answer for p in pairs] == [f"Answer {i}." for i in range(1, 6)]

    def test_wrapped_in_commentary_and_fences(self, job):
        text = "Sure! Here are your questions:\n```json\n" + json.dumps(_items(5), indent=2) + "\n```\nGood luck [really]!"
        pairs = extract_questions(text, job)
        assert pairs[0].question == "Question 1?"
        assert len(pairs) == QUESTION_SET_SIZE

    def test_brackets_inside_strings_do_not_end_the_array(self):
        items = _items(5)
        items[2]["answer"] = "Use list[int] or a ] bracket"
        pairs = parse_question_array(json.dumps(items))
        assert pairs is not None
        assert pairs[2].answer == "Use list[int] or a ] bracket"

    def test_backticks_inside_answers_are_kept(self):
        items = _items(5)
        items[1]["answer"] = "Wrap it as ```python\nprint(1)\n``` in the docs"
        text = "```json\n" + json.dumps(items) + "\n```"
        pairs = parse_question_array(text)
        assert pairs is not None
        assert pairs[1].answer == "Wrap it as ```python\nprint(1)\n``` in the docs"

    def test_single_line_fenced_array(self):
        pairs = parse_question_array("```json" + json.dumps(_items(5)) + "```")
        assert pairs is not None
        assert pairs[4].answer == "Answer 5."

    def test_more_than_five_are_truncated(self):
        pairs = parse_question_array(json.dumps(_items(7)))
        assert len(pairs) == 5
        assert pairs[-1].question == "Question 5?"

    @pytest.mark.parametrize("payload", [
        "[]",
        json.dumps(_items(3)),
        json.dumps([{"question": "Q?"}] * 5),
        json.dumps([{"question": 1, "answer": "A"}] * 5),
        json.dumps({"question": "Q?", "answer": "A"}),
        '[{"question": "Q?", "answer": ',
    ])
    def test_malformed_arrays_are_rejected(self, payload):
        assert parse_question_array(payload) is None


class TestQuestionList:
    LIST_TEXT = "\n".join(
        f"{i}. Question: What about topic {i}?\nSome detail line.\nAnswer: Topic {i} explained.\nMore answer."
        for i in range(1, 6)
    )

    def test_numbered_list_is_parsed(self):
        pairs = parse_question_list(self.LIST_TEXT)
        assert pairs is not None
        assert len(pairs) == 5
        assert pairs[0].question == "What about topic 1?\nSome detail line."
        assert pairs[4].answer == "Topic 5 explained.\nMore answer."

    def test_list_used_when_no_json(self, job):
        pairs = extract_questions("Here you go:\n" + self.LIST_TEXT, job)
        assert pairs[1].question.startswith("What about topic 2?")

    def test_markdown_bold_labels(self):
        text = "\n".join(f"{i}. **Question:** Q{i}?\n**Answer:** A{i}." for i in range(1, 6))
        pairs = parse_question_list(text)
        assert [p.answer for p in pairs] == [f"A{i}." for i in range(1, 6)]

    def test_fewer_than_five_blocks_is_rejected(self):
        text = "\n".join(f"{i}. Question: Q{i}?\nAnswer: A{i}." for i in range(1, 5))
        assert parse_question_list(text) is None


class TestQuestionFallback:
    @pytest.mark.parametrize("text", [
        None,
        "",
        "   ",
        "I cannot help with that.",
        "1. Question: Only one?\nAnswer: Yes.",
        json.dumps(_items(2)),
    ])
    def test_fallback_is_always_five(self, job, text):
        pairs = extract_questions(text, job)
        assert pairs == fallback_questions(job)
        assert len(pairs) == QUESTION_SET_SIZE

    def test_fallback_uses_job_context(self, job):
        pairs = fallback_questions(job)
        joined = " ".join(p.question for p in pairs)
        assert "Python, FastAPI, PostgreSQL" in joined
        assert "Backend Engineer" in joined
        assert "3 years" in joined


class TestEvaluation:
    def test_rating_and_feedback(self):
        ev = extract_evaluation("Rating: 3\nFeedback: Needs more detail.")
        assert (ev.rating, ev.feedback) == (3, "Needs more detail.")
        assert not ev.degraded

    def test_feedback_runs_to_end_of_text(self):
        ev = extract_evaluation("Rating: 7\nFeedback: Good job\nMention eviction policies too.")
        assert ev.rating == 7
        assert ev.feedback == "Good job\nMention eviction policies too."

    def test_labels_are_case_insensitive(self):
        ev = extract_evaluation("RATING: 9\nfeedback:   Clear and complete.  ")
        assert (ev.rating, ev.feedback) == (9, "Clear and complete.")

    def test_markdown_bold_labels(self):
        ev = extract_evaluation("**Rating:** 6/10\n**Feedback:** Decent.")
        assert (ev.rating, ev.feedback) == (6, "Decent.")

    @pytest.mark.parametrize("raw, expected", [("15", 10), ("11", 10), ("-3", 0), ("10", 10)])
    def test_out_of_range_ratings_are_clamped(self, raw, expected):
        ev = extract_evaluation(f"Rating: {raw}\nFeedback: ok")
        assert ev.rating == expected

    @pytest.mark.parametrize("text", [
        "",
        None,
        "Feedback: Great answer.",
        "Rating: 8",
        "Rating: 8\nFeedback:   ",
        "The model refused to answer.",
    ])
    def test_missing_parts_give_sentinel(self, text):
        ev = extract_evaluation(text)
        assert ev.rating == 0
        assert ev.feedback == SENTINEL_FEEDBACK
        assert ev.degraded
