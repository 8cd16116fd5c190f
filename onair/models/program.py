from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Index, Integer, String
from onair.db import Base


class Program(Base):
    __tablename__ = "program"
    __table_args__ = (Index("ix_program_channel_start", "channel_id", "start_time"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(Integer, ForeignKey("channel.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)  # naive UTC
    duration = Column(Float, nullable=True)  # seconds, as authored
    title = Column(String, nullable=True)
    media_ref = Column(String, nullable=True)
    poster_ref = Column(String, nullable=True)


class ProgramDraft(Base):
    __tablename__ = "program_draft"
    __table_args__ = (Index("ix_program_draft_channel_day", "channel_id", "day"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(Integer, ForeignKey("channel.id"), nullable=False)
    day = Column(Date, nullable=False)
    sort_index = Column(Integer, nullable=False, default=0)
    start_time = Column(DateTime, nullable=False)
    duration = Column(Float, nullable=True)
    title = Column(String, nullable=True)
    media_ref = Column(String, nullable=True)
    poster_ref = Column(String, nullable=True)
