from fastapi import FastAPI, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from typing import Callable, Optional
import os
import asyncio
from dotenv import load_dotenv

load_dotenv()

from database import init_db, close_db, async_session
from models import Interview, UserAnswer
from schemas import InterviewCreate, InterviewUpdate, JobContext, QuestionAnswerPair
from persistence import DocumentStore, AnswerGateway, WriteError, utcnow
from gemini_service import generate_questions
from answer_session import AnswerSession, InvalidTransition
from transcript import Fragment
from stt import transcribe_into

app = FastAPI(title="Interview Coach API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("FRONTEND_URL", "http://localhost:3000")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    await init_db()


@app.on_event("shutdown")
async def shutdown():
    await close_db()


def get_store() -> DocumentStore:
    return DocumentStore(async_session)


# ── Helpers ──────────────────────────────────────────────

def interview_to_dict(row: Interview) -> dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "position": row.position,
        "description": row.description,
        "experience": row.experience,
        "tech_stack": row.tech_stack,
        "questions": row.questions,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def answer_to_dict(row: UserAnswer) -> dict:
    return {
        "id": row.id,
        "interview_id": row.interview_id,
        "question": row.question,
        "correct_ans": row.correct_ans,
        "user_ans": row.user_ans,
        "feedback": row.feedback,
        "rating": row.rating,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


def overall_rating(answers: list[UserAnswer]) -> Optional[float]:
    """Mean of the genuine ratings; sentinel (0) answers are left out."""
    scored = [a.rating for a in answers if a.rating > 0]
    if not scored:
        return None
    return round(sum(scored) / len(scored), 1)


async def load_owned_interview(store: DocumentStore, interview_id: int, user_id: str) -> Interview:
    try:
        interview = await store.get(Interview, interview_id)
    except WriteError:
        raise HTTPException(status_code=502, detail="Storage unavailable")
    if interview is None:
        raise HTTPException(status_code=404, detail="Interview not found")
    if interview.user_id != user_id:
        raise HTTPException(status_code=403, detail="Not your interview")
    return interview


# ── Interview Endpoints ─────────────────────────────────

@app.post("/api/interviews", status_code=201)
async def create_interview(body: InterviewCreate, store: DocumentStore = Depends(get_store)):
    job = JobContext(**body.model_dump(exclude={"user_id"}))
    questions = await generate_questions(job)
    row = Interview(
        user_id=body.user_id,
        position=job.position,
        description=job.description,
        experience=job.experience,
        tech_stack=job.tech_stack,
        questions=[q.model_dump() for q in questions],
    )
    try:
        await store.insert(row)
    except WriteError:
        raise HTTPException(status_code=502, detail="Failed to create interview")
    print(f"[API] Interview {row.id} created for {body.user_id} ({job.position})")
    return interview_to_dict(row)


@app.get("/api/interviews")
async def list_interviews(user_id: str = Query(...), store: DocumentStore = Depends(get_store)):
    try:
        rows = await store.query(Interview, order_by=Interview.id.desc(), user_id=user_id)
    except WriteError:
        raise HTTPException(status_code=502, detail="Storage unavailable")
    return [interview_to_dict(r) for r in rows]


@app.get("/api/interviews/{interview_id}")
async def get_interview(interview_id: int, user_id: str = Query(...), store: DocumentStore = Depends(get_store)):
    interview = await load_owned_interview(store, interview_id, user_id)
    return interview_to_dict(interview)


@app.put("/api/interviews/{interview_id}")
async def update_interview(
    interview_id: int,
    body: InterviewUpdate,
    user_id: str = Query(...),
    store: DocumentStore = Depends(get_store),
):
    await load_owned_interview(store, interview_id, user_id)
    questions = await generate_questions(body)
    values = {
        **body.model_dump(),
        "questions": [q.model_dump() for q in questions],
        "updated_at": utcnow(),
    }
    try:
        await store.update(Interview, interview_id, values)
        updated = await store.get(Interview, interview_id)
    except WriteError:
        raise HTTPException(status_code=502, detail="Failed to update interview")
    return interview_to_dict(updated)


@app.delete("/api/interviews/{interview_id}")
async def delete_interview(interview_id: int, user_id: str = Query(...), store: DocumentStore = Depends(get_store)):
    await load_owned_interview(store, interview_id, user_id)
    try:
        await store.delete(Interview, interview_id)
    except WriteError:
        raise HTTPException(status_code=502, detail="Failed to delete interview")
    return {"ok": True}


@app.get("/api/interviews/{interview_id}/answers")
async def list_answers(interview_id: int, user_id: str = Query(...), store: DocumentStore = Depends(get_store)):
    await load_owned_interview(store, interview_id, user_id)
    try:
        rows = await store.query(UserAnswer, order_by=UserAnswer.id, user_id=user_id, interview_id=interview_id)
    except WriteError:
        raise HTTPException(status_code=502, detail="Storage unavailable")
    return {
        "interview_id": interview_id,
        "overall_rating": overall_rating(rows),
        "answers": [answer_to_dict(r) for r in rows],
    }


# ── WebSocket Answer Session ──────────────────────────────

class WebSocketCapture:
    """Capture source backed by the browser's speech recognition.

    start/stop are forwarded to the client; fragments come back as messages
    and are handed to whatever sink the session registered last.
    """

    def __init__(self, ws: WebSocket):
        self.ws = ws
        self._sink: Optional[Callable[[Fragment], None]] = None

    async def start(self, on_fragment: Callable[[Fragment], None]) -> None:
        self._sink = on_fragment
        await self.ws.send_json({"type": "capture", "action": "start"})

    async def stop(self) -> None:
        # The sink stays registered; the session drops anything past the stop boundary
        await self.ws.send_json({"type": "capture", "action": "stop"})

    def deliver(self, fragment: Fragment) -> None:
        if self._sink is not None:
            self._sink(fragment)


def parse_fragment(msg: dict) -> Fragment:
    index = msg.get("index")
    return Fragment(
        text=str(msg.get("text") or ""),
        is_final=bool(msg.get("is_final")),
        index=index if isinstance(index, int) else None,
    )


@app.websocket("/ws/interviews/{interview_id}/answer")
async def websocket_answer(ws: WebSocket, interview_id: int, user_id: str, question_index: int = 0):
    """One question/answer session per connection; the browser is the microphone."""
    store = get_store()
    try:
        interview = await store.get(Interview, interview_id)
    except WriteError:
        interview = None
    if interview is None or interview.user_id != user_id:
        await ws.close(code=4404)
        return

    questions = [QuestionAnswerPair(**q) for q in interview.questions]
    if not 0 <= question_index < len(questions):
        await ws.close(code=4400)
        return

    await ws.accept()
    print(f"[WS] Answer session opened: interview={interview_id} user={user_id} q={question_index}")

    capture = WebSocketCapture(ws)
    session = AnswerSession(
        user_id,
        questions[question_index],
        capture=capture,
        gateway=AnswerGateway(store),
        interview_id=interview_id,
        listener=ws.send_json,
    )
    pending: set[asyncio.Task] = set()

    async def guarded(coro):
        try:
            return await coro
        except InvalidTransition as e:
            await ws.send_json({"type": "error", "detail": str(e)})

    def spawn(coro) -> None:
        task = asyncio.create_task(guarded(coro))
        pending.add(task)
        task.add_done_callback(pending.discard)

    async def send_transcript() -> None:
        await ws.send_json({
            "type": "transcript",
            "text": session.transcript.text,
            "interim": session.transcript.interim,
        })

    async def transcribe_audio(chunks: list[str]) -> None:
        if await transcribe_into(capture.deliver, chunks) is not None:
            await send_transcript()

    await ws.send_json({"type": "session", **session.snapshot()})

    try:
        while True:
            msg = await ws.receive_json()
            kind = msg.get("type")

            if kind == "start":
                await guarded(session.start_recording())
            elif kind == "stop":
                spawn(session.stop_recording())
            elif kind == "fragment":
                capture.deliver(parse_fragment(msg))
                await send_transcript()
            elif kind == "audio":
                spawn(transcribe_audio(list(msg.get("chunks") or [])))
            elif kind == "record_again":
                await guarded(session.record_again())
            elif kind == "save":
                spawn(session.save())
            elif kind == "question":
                index = msg.get("index")
                if not isinstance(index, int) or not 0 <= index < len(questions):
                    await ws.send_json({"type": "error", "detail": "Invalid question index"})
                    continue
                await session.change_question(questions[index])
                await ws.send_json({"type": "session", **session.snapshot()})
            else:
                await ws.send_json({"type": "error", "detail": f"Unknown message type: {kind}"})
    except WebSocketDisconnect:
        print("[WS] Client disconnected")
    finally:
        for task in pending:
            task.cancel()
