from sqlalchemy import Column, String, Text

from app.db.base import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(String, primary_key=True, index=True)
    title = Column(String, nullable=False)

    # Loosely typed JSON text maintained by the course editor:
    # restrictions = {"timeLimit": 60, ...}
    # level_settings = {"1": {"timeLimit": 45}, ...}
    restrictions = Column(Text, nullable=True)
    level_settings = Column(Text, nullable=True)
