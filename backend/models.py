from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class Interview(Base):
    __tablename__ = "interviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    position = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    experience = Column(Integer, nullable=False, default=0)
    tech_stack = Column(Text, nullable=False)
    questions = Column(JSON, nullable=False)  # list of {"question", "answer"}
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, nullable=True)


class UserAnswer(Base):
    __tablename__ = "user_answers"

    # No unique constraint on (user_id, question): uniqueness is a pre-write check
    id = Column(Integer, primary_key=True, autoincrement=True)
    interview_id = Column(Integer, nullable=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    question = Column(Text, nullable=False)
    correct_ans = Column(Text, nullable=False)
    user_ans = Column(Text, nullable=False)
    feedback = Column(Text, nullable=False)
    rating = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=func.now())
