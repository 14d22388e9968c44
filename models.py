from sqlalchemy import JSON, Column, Integer, String

from database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)


class Website(Base):
    __tablename__ = "websites"

    id = Column(String, primary_key=True)
    url = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="checking")
    added_at = Column(String, nullable=False)

    # serialized CheckResult payloads, oldest first
    last_check = Column(JSON, nullable=True)
    check_history = Column(JSON, nullable=False, default=list)


class CheckLog(Base):
    __tablename__ = "check_results"

    # insertion order; the uuid in check_id is what callers see
    seq = Column(Integer, primary_key=True, autoincrement=True)
    check_id = Column(String, unique=True, nullable=False)
    url = Column(String, index=True, nullable=False)
    status = Column(String, nullable=False)
    status_code = Column(Integer, nullable=True)
    load_time = Column(Integer, nullable=False)
    content_length = Column(Integer, nullable=True)
    error = Column(String, nullable=True)
    timestamp = Column(String, nullable=False)
    performance_score = Column(Integer, nullable=False)
    ttfb = Column(Integer, nullable=True)
