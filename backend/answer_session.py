"""State machine for answering one interview question by voice.

Idle -> Recording -> Evaluating -> Evaluated -> Saving -> Saved

Failures never leave the session in an error state: a short answer goes back
to Idle, a scoring failure becomes the sentinel evaluation, and a failed write
goes back to Evaluated so the user can retry the save.

Every reset bumps ``generation``. Async results (scoring, saving, fragments
from an earlier recording) are applied only if the generation they started
under is still current.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from gemini_service import score_answer
from persistence import PersistenceGateway, WriteError
from schemas import AnswerRecord, Evaluation, QuestionAnswerPair
from transcript import Fragment, TranscriptAccumulator


MIN_ANSWER_LENGTH = 15


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    EVALUATING = "evaluating"
    EVALUATED = "evaluated"
    SAVING = "saving"
    SAVED = "saved"


class SaveOutcome(str, Enum):
    SAVED = "saved"
    ALREADY_ANSWERED = "already_answered"
    FAILED = "failed"


class InvalidTransition(Exception):
    def __init__(self, trigger: str, state: SessionState):
        super().__init__(f"'{trigger}' is not allowed while {state.value}")
        self.trigger = trigger
        self.state = state


@dataclass(frozen=True)
class Notice:
    kind: str  # success | info | error
    code: str
    title: str
    description: str = ""

    def to_dict(self) -> dict:
        return {"type": "notice", **asdict(self)}


class CaptureSource(Protocol):
    async def start(self, on_fragment: Callable[[Fragment], None]) -> None: ...

    async def stop(self) -> None: ...


Scorer = Callable[[QuestionAnswerPair, str], Awaitable[Evaluation]]
Listener = Callable[[dict], Awaitable[None]]


class AnswerSession:
    def __init__(
        self,
        user_id: str,
        question: QuestionAnswerPair,
        *,
        capture: CaptureSource,
        gateway: PersistenceGateway,
        scorer: Scorer = score_answer,
        interview_id: Optional[int] = None,
        listener: Optional[Listener] = None,
    ):
        self.user_id = user_id
        self.question = question
        self.interview_id = interview_id
        self.capture = capture
        self.gateway = gateway
        self.scorer = scorer
        self.listener = listener

        self.state = SessionState.IDLE
        self.generation = 0
        self.transcript = TranscriptAccumulator()
        self.evaluation: Optional[Evaluation] = None
        self.notices: list[Notice] = []

    # ── Events ──────────────────────────────────────────────

    async def _emit(self, event: dict) -> None:
        if self.listener is not None:
            await self.listener(event)

    async def _set_state(self, state: SessionState) -> None:
        print(f"[SESSION] {self.user_id}: {self.state.value} -> {state.value} (gen {self.generation})")
        self.state = state
        await self._emit({"type": "state", "state": state.value, "generation": self.generation})

    async def _notify(self, kind: str, code: str, title: str, description: str = "") -> None:
        notice = Notice(kind=kind, code=code, title=title, description=description)
        self.notices.append(notice)
        await self._emit(notice.to_dict())

    def _require(self, trigger: str, *allowed: SessionState) -> None:
        if self.state not in allowed:
            raise InvalidTransition(trigger, self.state)

    def _reset(self) -> None:
        self.generation += 1
        self.transcript.reset()
        self.evaluation = None

    def _fragment_sink(self, generation: int) -> Callable[[Fragment], None]:
        def deliver(fragment: Fragment) -> None:
            if generation != self.generation:
                return
            self.transcript.push(fragment)
        return deliver

    @property
    def answer_text(self) -> str:
        return self.transcript.text

    @property
    def busy(self) -> bool:
        return self.state in (SessionState.EVALUATING, SessionState.SAVING)

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "generation": self.generation,
            "question": self.question.question,
            "transcript": self.transcript.text,
            "interim": self.transcript.interim,
            "evaluation": self.evaluation.model_dump() if self.evaluation else None,
        }

    # ── Triggers ────────────────────────────────────────────
    # State is assigned before the first await in each trigger, so a second
    # trigger queued behind this one already sees the new state.

    async def start_recording(self) -> None:
        self._require("start", SessionState.IDLE, SessionState.SAVED)
        self._reset()
        await self._set_state(SessionState.RECORDING)
        await self.capture.start(self._fragment_sink(self.generation))

    async def stop_recording(self) -> Optional[Evaluation]:
        """Stop capture and score the answer. Returns None when nothing was evaluated."""
        self._require("stop", SessionState.RECORDING)
        answer = self.transcript.close()

        if len(answer.strip()) < MIN_ANSWER_LENGTH:
            self._reset()
            await self._set_state(SessionState.IDLE)
            await self.capture.stop()
            await self._notify(
                "error",
                "answer_too_short",
                "Answer too short",
                f"Your answer should be at least {MIN_ANSWER_LENGTH} characters.",
            )
            return None

        generation = self.generation
        await self._set_state(SessionState.EVALUATING)
        await self.capture.stop()
        try:
            evaluation = await self.scorer(self.question, answer)
        except Exception as e:
            print(f"[SESSION] Scorer raised, using sentinel evaluation: {e!r}")
            evaluation = Evaluation.sentinel()

        if generation != self.generation:
            print(f"[SESSION] Discarding stale evaluation (gen {generation}, now {self.generation})")
            return None

        self.evaluation = evaluation
        await self._set_state(SessionState.EVALUATED)
        await self._emit({"type": "evaluation", **evaluation.model_dump(), "degraded": evaluation.degraded})
        if evaluation.degraded:
            await self._notify(
                "error",
                "scoring_degraded",
                "AI evaluation failed",
                "The answer could not be scored automatically. You can record again or save it unscored.",
            )
        return evaluation

    async def record_again(self) -> None:
        self._require(
            "record_again",
            SessionState.RECORDING,
            SessionState.EVALUATING,
            SessionState.EVALUATED,
        )
        was_recording = self.state == SessionState.RECORDING
        self._reset()
        await self._set_state(SessionState.RECORDING)
        if was_recording:
            await self.capture.stop()
        await self.capture.start(self._fragment_sink(self.generation))

    async def save(self) -> SaveOutcome:
        self._require("save", SessionState.EVALUATED)
        evaluation = self.evaluation
        generation = self.generation
        record = AnswerRecord(
            user_id=self.user_id,
            interview_id=self.interview_id,
            question_text=self.question.question,
            correct_answer_text=self.question.answer,
            user_answer_text=self.transcript.text,
            feedback=evaluation.feedback,
            rating=evaluation.rating,
        )
        await self._set_state(SessionState.SAVING)

        try:
            if await self.gateway.exists(self.user_id, self.question.question):
                if generation == self.generation:
                    await self._set_state(SessionState.SAVED)
                    await self._notify("info", "already_answered", "Already answered",
                                       "You have already answered this question.")
                return SaveOutcome.ALREADY_ANSWERED
            await self.gateway.save(record)
        except WriteError as e:
            print(f"[SESSION] Save failed for {self.user_id}: {e}")
            if generation == self.generation:
                await self._set_state(SessionState.EVALUATED)
                await self._notify("error", "save_failed", "Failed to save answer")
            return SaveOutcome.FAILED

        if generation == self.generation:
            self.transcript.reset()
            await self._set_state(SessionState.SAVED)
            await self._notify("success", "answer_saved", "Answer saved successfully")
        return SaveOutcome.SAVED

    async def change_question(self, question: QuestionAnswerPair) -> None:
        was_recording = self.state == SessionState.RECORDING
        self._reset()
        self.question = question
        await self._set_state(SessionState.IDLE)
        if was_recording:
            await self.capture.stop()
