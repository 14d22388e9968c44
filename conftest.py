import pytest

from database import Base, make_engine, make_session_factory
from schemas import CheckResult
from storage import DatabaseStorage, MemoryStorage


def make_result(url="https://example.com", status="online", **kwargs) -> CheckResult:
    if status == "online":
        kwargs.setdefault("status_code", 200)
        kwargs.setdefault("load_time", 120)
        kwargs.setdefault("content_length", 512)
        kwargs.setdefault("performance_score", 100)
        kwargs.setdefault("ttfb", 36)
    else:
        kwargs.setdefault("load_time", 15)
        kwargs.setdefault("error", "ConnectError: connection refused")
        kwargs.setdefault("performance_score", 0)
    return CheckResult(url=url, status=status, **kwargs)


def make_database_storage(url: str = "sqlite://") -> DatabaseStorage:
    engine = make_engine(url)
    Base.metadata.create_all(bind=engine)
    return DatabaseStorage(make_session_factory(engine))


@pytest.fixture(params=["memory", "database"])
def storage(request, tmp_path):
    """Each storage backend, empty."""
    if request.param == "memory":
        return MemoryStorage()
    return make_database_storage(f"sqlite:///{tmp_path / 'webpulse.db'}")
