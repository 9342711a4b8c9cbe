"""Parsing of free-text model output into question sets and evaluations.

Every public function here is total: malformed, empty or adversarial input
never raises, it degrades to deterministic fallback content instead.
"""
import json
import re
from typing import Optional

from schemas import Evaluation, JobContext, QuestionAnswerPair


QUESTION_SET_SIZE = 5

# A fence opens or closes the response, or sits on a line of its own; backticks inside values are content
_FENCE_LINE_RE = re.compile(r"^[ \t]*```[a-zA-Z]*[ \t]*$", re.MULTILINE)
_OPEN_FENCE_RE = re.compile(r"\A\s*```[a-zA-Z]*")
_CLOSE_FENCE_RE = re.compile(r"```\s*\Z")
_NUMBERED_SPLIT_RE = re.compile(r"\n\s*\d+\.\s+")
_QUESTION_RE = re.compile(r"question\s*\d*\s*:\s*(.+?)(?=\n\s*answer\s*\d*\s*:|\Z)", re.IGNORECASE | re.DOTALL)
_ANSWER_RE = re.compile(r"answer\s*\d*\s*:\s*(.+?)(?=\n\s*question\s*\d*\s*:|\Z)", re.IGNORECASE | re.DOTALL)
_RATING_RE = re.compile(r"rating\s*\**\s*:\s*\**\s*(-?\d+)", re.IGNORECASE)
_FEEDBACK_RE = re.compile(r"feedback\s*\**\s*:\s*\**\s*(.*)", re.IGNORECASE | re.DOTALL)


def strip_fences(text: str) -> str:
    text = _FENCE_LINE_RE.sub("", text)
    text = _CLOSE_FENCE_RE.sub("", _OPEN_FENCE_RE.sub("", text))
    return text.strip()


def _outermost_array_span(text: str) -> Optional[str]:
    """Return the first balanced [...] span, ignoring brackets inside JSON strings."""
    start = text.find("[")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    # Unbalanced: take the widest span and let json.loads reject it
    end = text.rfind("]")
    return text[start:end + 1] if end > start else None


def _pair_from_item(item) -> Optional[QuestionAnswerPair]:
    if not isinstance(item, dict):
        return None
    question = item.get("question")
    answer = item.get("answer")
    if not isinstance(question, str) or not isinstance(answer, str):
        return None
    question, answer = question.strip(), answer.strip()
    if not question or not answer:
        return None
    return QuestionAnswerPair(question=question, answer=answer)


def parse_question_array(text: str) -> Optional[list[QuestionAnswerPair]]:
    span = _outermost_array_span(strip_fences(text))
    if span is None:
        return None
    try:
        data = json.loads(span)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, list) or not data:
        return None

    pairs: list[QuestionAnswerPair] = []
    for item in data[:QUESTION_SET_SIZE]:
        pair = _pair_from_item(item)
        if pair is None:
            return None
        pairs.append(pair)
    if len(pairs) < QUESTION_SET_SIZE:
        return None
    return pairs


def parse_question_list(text: str) -> Optional[list[QuestionAnswerPair]]:
    # Leading newline so a list starting at "1." on the first line still splits
    body = "\n" + strip_fences(text).replace("**", "")
    blocks = [b for b in _NUMBERED_SPLIT_RE.split(body) if b.strip()]

    pairs: list[QuestionAnswerPair] = []
    for block in blocks:
        q = _QUESTION_RE.search(block)
        a = _ANSWER_RE.search(block)
        if not q or not a:
            continue
        question, answer = q.group(1).strip(), a.group(1).strip()
        if question and answer:
            pairs.append(QuestionAnswerPair(question=question, answer=answer))
        if len(pairs) == QUESTION_SET_SIZE:
            return pairs
    return None


def fallback_questions(job: JobContext) -> list[QuestionAnswerPair]:
    role = job.position
    stack = job.tech_stack
    years = job.experience
    return [
        QuestionAnswerPair(
            question=f"What is {stack} and where have you used it?",
            answer=f"{stack} is commonly used in modern applications. A strong answer names concrete projects, "
                   f"the problems it solved and its trade-offs.",
        ),
        QuestionAnswerPair(
            question=f"Walk me through a feature you built end-to-end as a {role}.",
            answer="A strong answer covers requirements, design choices, implementation, testing and what was learned.",
        ),
        QuestionAnswerPair(
            question=f"How do you approach debugging a production issue in a {stack} system?",
            answer="Reproduce the issue, use logs and metrics to isolate the root cause, mitigate impact, "
                   "fix it with a test, and follow up with preventive measures.",
        ),
        QuestionAnswerPair(
            question="How do you ensure code quality when working in a team?",
            answer="Code review, automated tests at several levels, CI checks, shared conventions and refactoring legacy code incrementally.",
        ),
        QuestionAnswerPair(
            question=f"With {years} years of experience, which technical decision are you most proud of, and why?",
            answer="A strong answer explains the context, the alternatives considered, the trade-offs and the measurable outcome.",
        ),
    ]


def extract_questions(text: Optional[str], job: JobContext) -> list[QuestionAnswerPair]:
    """Always returns exactly QUESTION_SET_SIZE pairs."""
    if not text or not text.strip():
        print("[EXTRACT] Empty question response -using fallback set")
        return fallback_questions(job)

    pairs = parse_question_array(text)
    if pairs is not None:
        return pairs

    pairs = parse_question_list(text)
    if pairs is not None:
        print("[EXTRACT] Question set parsed from numbered list")
        return pairs

    print(f"[EXTRACT] Unparseable question response -using fallback set: {text[:120]!r}")
    return fallback_questions(job)


def extract_evaluation(text: Optional[str]) -> Evaluation:
    if not text:
        return Evaluation.sentinel()

    rating_match = _RATING_RE.search(text)
    feedback_match = _FEEDBACK_RE.search(text)
    if not rating_match or not feedback_match:
        print(f"[EXTRACT] Missing rating or feedback -sentinel evaluation: {text[:120]!r}")
        return Evaluation.sentinel()

    feedback = feedback_match.group(1).strip()
    if not feedback:
        return Evaluation.sentinel()

    rating = max(0, min(10, int(rating_match.group(1))))
    return Evaluation(rating=rating, feedback=feedback)
