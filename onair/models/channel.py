from sqlalchemy import Boolean, Column, Integer, String
from onair.db import Base


class Channel(Base):
    __tablename__ = "channel"
    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=True, unique=True)
    always_live = Column(Boolean, nullable=False, default=False)
    live_feed_ref = Column(String, nullable=True)
    logo_ref = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
