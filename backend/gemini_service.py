import asyncio
import os

from schemas import Evaluation, JobContext, QuestionAnswerPair
from text_extractor import extract_evaluation, extract_questions


def _timeout_seconds() -> float:
    try:
        return float(os.getenv("SCORING_TIMEOUT_SECONDS", "30"))
    except ValueError:
        return 30.0


async def send_prompt(prompt: str) -> str:
    """Text in, text out. Raises on network, quota, model errors and timeout."""
    api_key = os.getenv("GEMINI_API_KEY")
    scoring_model = os.getenv("SCORING_MODEL", "gemini-2.5-flash-lite")

    from google import genai

    client = genai.Client(api_key=api_key)
    response = await asyncio.wait_for(
        asyncio.to_thread(
            client.models.generate_content,
            model=scoring_model,
            contents=prompt,
        ),
        timeout=_timeout_seconds(),
    )
    return (response.text or "").strip()


def build_questions_prompt(job: JobContext) -> str:
    return f"""You are an experienced technical interviewer.

Generate exactly 5 interview questions with detailed answers.

STRICT RULES:
- Output must be a valid JSON array
- No markdown
- No extra text
- Each item must have "question" and "answer"

FORMAT:
[
  {{ "question": "Question text", "answer": "Answer text" }}
]

JOB DETAILS:
Role: {job.position}
Description: {job.description}
Experience: {job.experience} years
Tech Stack: {job.tech_stack}

Return ONLY the JSON array."""


def build_evaluation_prompt(question: str, correct_answer: str, user_answer: str) -> str:
    return f"""Evaluate the user's interview answer.

STRICT FORMAT (no extra text):
Rating: <number from 1 to 10>
Feedback: <2-3 lines constructive feedback>

Question: {question}
Correct Answer: {correct_answer}
User Answer: {user_answer}"""


async def generate_questions(job: JobContext, sender=None) -> list[QuestionAnswerPair]:
    try:
        text = await (sender or send_prompt)(build_questions_prompt(job))
    except Exception as e:
        print(f"[GEMINI] Question generation error: {e!r}")
        text = ""
    return extract_questions(text, job)


async def score_answer(qa: QuestionAnswerPair, user_answer: str, sender=None) -> Evaluation:
    try:
        text = await (sender or send_prompt)(build_evaluation_prompt(qa.question, qa.answer, user_answer))
    except Exception as e:
        print(f"[SCORING] Scoring error: {e!r}")
        return Evaluation.sentinel()
    print(f"[SCORING] Raw AI feedback: {text[:200]!r}")
    return extract_evaluation(text)
