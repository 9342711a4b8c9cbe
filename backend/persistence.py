from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import Base, UserAnswer
from schemas import AnswerRecord


class WriteError(Exception):
    """A document store call failed. Not retried within a session."""


class DocumentStore:
    """Equality queries, inserts, updates and deletes over the ORM tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def query(self, model: type[Base], order_by: Any = None, **equals) -> list:
        stmt = select(model)
        for field, value in equals.items():
            stmt = stmt.where(getattr(model, field) == value)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            print(f"[STORE] Query on {model.__tablename__} failed: {e}")
            raise WriteError(str(e)) from e

    async def get(self, model: type[Base], row_id: int) -> Optional[Any]:
        try:
            async with self._session_factory() as db:
                return await db.get(model, row_id)
        except SQLAlchemyError as e:
            print(f"[STORE] Get {model.__tablename__}#{row_id} failed: {e}")
            raise WriteError(str(e)) from e

    async def insert(self, row: Base) -> int:
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
                await db.refresh(row)
                return row.id
        except SQLAlchemyError as e:
            print(f"[STORE] Insert into {row.__tablename__} failed: {e}")
            raise WriteError(str(e)) from e

    async def update(self, model: type[Base], row_id: int, values: dict) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(update(model).where(model.id == row_id).values(**values))
                await db.commit()
        except SQLAlchemyError as e:
            print(f"[STORE] Update {model.__tablename__}#{row_id} failed: {e}")
            raise WriteError(str(e)) from e

    async def delete(self, model: type[Base], row_id: int) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(delete(model).where(model.id == row_id))
                await db.commit()
        except SQLAlchemyError as e:
            print(f"[STORE] Delete {model.__tablename__}#{row_id} failed: {e}")
            raise WriteError(str(e)) from e


class PersistenceGateway(Protocol):
    async def exists(self, user_id: str, question_text: str) -> bool: ...

    async def save(self, record: AnswerRecord) -> None: ...


class AnswerGateway:
    """Write-once path for graded answers.

    exists() and save() are separate round trips, so two sessions saving the
    same (user, question) at the same moment can both pass the check. Known
    limitation; the table has no unique constraint to back it up.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    async def exists(self, user_id: str, question_text: str) -> bool:
        rows = await self.store.query(UserAnswer, user_id=user_id, question=question_text)
        return bool(rows)

    async def save(self, record: AnswerRecord) -> None:
        created_at = record.created_at.astimezone(timezone.utc).replace(tzinfo=None)
        await self.store.insert(UserAnswer(
            interview_id=record.interview_id,
            user_id=record.user_id,
            question=record.question_text,
            correct_ans=record.correct_answer_text,
            user_ans=record.user_answer_text,
            feedback=record.feedback,
            rating=record.rating,
            created_at=created_at,
        ))


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
