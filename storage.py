"""Storage for check results, monitored websites and users.

Two interchangeable backends implement :class:`Storage`: :class:`MemoryStorage`
keeps everything in process memory, :class:`DatabaseStorage` persists through
SQLAlchemy. :func:`build_storage` picks one at startup.

Both backends return history oldest-first, and both are safe to call from
several threads at once: mutations of one website are serialized by a lock
keyed on its id, global history appends by a single lock.
"""

import abc
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy import func

import config
import models
from database import Base, make_engine, make_session_factory
from history import GLOBAL_HISTORY_LIMIT, WEBSITE_HISTORY_LIMIT, BoundedLog
from schemas import CheckResult, MonitoredWebsite, User

logger = logging.getLogger(__name__)


class KeyedLock:
    """One lock per key. An entry lives only while some thread holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[str, list] = {}

    @contextmanager
    def __call__(self, key: str):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)


class Storage(abc.ABC):
    @abc.abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abc.abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abc.abstractmethod
    def create_user(self, username: str, password: str) -> User: ...

    @abc.abstractmethod
    def get_websites(self) -> List[MonitoredWebsite]: ...

    @abc.abstractmethod
    def get_website(self, website_id: str) -> Optional[MonitoredWebsite]: ...

    @abc.abstractmethod
    def add_website(self, url: str, name: str) -> MonitoredWebsite: ...

    @abc.abstractmethod
    def remove_website(self, website_id: str) -> bool: ...

    @abc.abstractmethod
    def update_website_check(self, website_id: str, result: CheckResult) -> Optional[MonitoredWebsite]:
        """Apply ``result`` to a website: append to its history, make it the
        last check and copy its status. Returns None for an unknown id."""

    @abc.abstractmethod
    def add_check_result(self, result: CheckResult) -> CheckResult: ...

    @abc.abstractmethod
    def get_check_history(self, url: Optional[str] = None) -> List[CheckResult]: ...


class MemoryStorage(Storage):
    def __init__(self):
        self._users: Dict[str, User] = {}
        self._websites: Dict[str, MonitoredWebsite] = {}
        self._website_histories: Dict[str, BoundedLog[CheckResult]] = {}
        self._history: BoundedLog[CheckResult] = BoundedLog(GLOBAL_HISTORY_LIMIT)
        self._registry_lock = threading.Lock()
        self._history_lock = threading.Lock()
        self._website_locks = KeyedLock()

    def get_user(self, user_id):
        return self._users.get(user_id)

    def get_user_by_username(self, username):
        return next((u for u in list(self._users.values()) if u.username == username), None)

    def create_user(self, username, password):
        user = User(username=username, password=password)
        with self._registry_lock:
            self._users[user.id] = user
        return user

    def _snapshot(self, website_id: str) -> Optional[MonitoredWebsite]:
        # stored websites are replaced whole on every update, never mutated
        website = self._websites.get(website_id)
        if website is None:
            return None
        return website.model_copy(update={"check_history": list(website.check_history)})

    def get_websites(self):
        with self._registry_lock:
            ids = list(self._websites)
        return [w for w in (self._snapshot(i) for i in ids) if w is not None]

    def get_website(self, website_id):
        return self._snapshot(website_id)

    def add_website(self, url, name):
        website = MonitoredWebsite(url=url, name=name)
        with self._registry_lock:
            self._website_histories[website.id] = BoundedLog(WEBSITE_HISTORY_LIMIT)
            self._websites[website.id] = website
        logger.info("Added website %s (%s)", website.id, url)
        return self._snapshot(website.id)

    def remove_website(self, website_id):
        with self._website_locks(website_id), self._registry_lock:
            existed = self._websites.pop(website_id, None) is not None
            self._website_histories.pop(website_id, None)
        if existed:
            logger.info("Removed website %s", website_id)
        return existed

    def update_website_check(self, website_id, result):
        with self._website_locks(website_id):
            website = self._websites.get(website_id)
            history = self._website_histories.get(website_id)
            if website is None or history is None:
                return None
            history.append(result)
            updated = website.model_copy(update={
                "last_check": result,
                "status": result.status,
                "check_history": history.to_list(),
            })
            self._websites[website_id] = updated
            return self._snapshot(website_id)

    def add_check_result(self, result):
        with self._history_lock:
            return self._history.append(result)

    def get_check_history(self, url=None):
        with self._history_lock:
            history = self._history.to_list()
        if url:
            return [r for r in history if r.url == url]
        return history


def _dump_result(result: CheckResult) -> dict:
    return result.model_dump(mode="json", exclude_none=True)


def _to_website(row: models.Website) -> MonitoredWebsite:
    return MonitoredWebsite(
        id=row.id,
        url=row.url,
        name=row.name,
        status=row.status,
        last_check=row.last_check,
        check_history=row.check_history or [],
        added_at=row.added_at,
    )


def _to_result(row: models.CheckLog) -> CheckResult:
    return CheckResult(
        id=row.check_id,
        url=row.url,
        status=row.status,
        status_code=row.status_code,
        load_time=row.load_time,
        content_length=row.content_length,
        error=row.error,
        timestamp=row.timestamp,
        performance_score=row.performance_score,
        ttfb=row.ttfb,
    )


class DatabaseStorage(Storage):
    """SQLAlchemy-backed storage. Errors from the database are not caught here."""

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._history_lock = threading.Lock()
        self._website_locks = KeyedLock()

    def get_user(self, user_id):
        with self._session_factory() as db:
            row = db.query(models.User).filter(models.User.id == user_id).first()
            return User(id=row.id, username=row.username, password=row.password) if row else None

    def get_user_by_username(self, username):
        with self._session_factory() as db:
            row = db.query(models.User).filter(models.User.username == username).first()
            return User(id=row.id, username=row.username, password=row.password) if row else None

    def create_user(self, username, password):
        user = User(username=username, password=password)
        with self._session_factory() as db:
            db.add(models.User(id=user.id, username=user.username, password=user.password))
            db.commit()
        return user

    def get_websites(self):
        with self._session_factory() as db:
            rows = db.query(models.Website).order_by(models.Website.added_at, models.Website.id).all()
            return [_to_website(row) for row in rows]

    def get_website(self, website_id):
        with self._session_factory() as db:
            row = db.query(models.Website).filter(models.Website.id == website_id).first()
            return _to_website(row) if row else None

    def add_website(self, url, name):
        website = MonitoredWebsite(url=url, name=name)
        with self._session_factory() as db:
            db.add(models.Website(
                id=website.id,
                url=website.url,
                name=website.name,
                status=website.status,
                added_at=website.added_at,
                last_check=None,
                check_history=[],
            ))
            db.commit()
        logger.info("Added website %s (%s)", website.id, url)
        return website

    def remove_website(self, website_id):
        with self._website_locks(website_id), self._session_factory() as db:
            deleted = db.query(models.Website).filter(models.Website.id == website_id).delete()
            db.commit()
        if deleted:
            logger.info("Removed website %s", website_id)
        return bool(deleted)

    def update_website_check(self, website_id, result):
        with self._website_locks(website_id), self._session_factory() as db:
            row = db.query(models.Website).filter(models.Website.id == website_id).with_for_update().first()
            if row is None:
                return None

            payload = _dump_result(result)
            history = BoundedLog(WEBSITE_HISTORY_LIMIT, row.check_history or [])
            history.append(payload)
            # assign fresh objects so the JSON columns are flagged dirty
            row.check_history = history.to_list()
            row.last_check = payload
            row.status = result.status
            db.commit()
            return _to_website(row)

    def add_check_result(self, result):
        with self._history_lock, self._session_factory() as db:
            db.add(models.CheckLog(
                check_id=result.id,
                url=result.url,
                status=result.status,
                status_code=result.status_code,
                load_time=result.load_time,
                content_length=result.content_length,
                error=result.error,
                timestamp=result.timestamp,
                performance_score=result.performance_score,
                ttfb=result.ttfb,
            ))
            db.flush()

            total = db.query(func.count(models.CheckLog.seq)).scalar()
            if total > GLOBAL_HISTORY_LIMIT:
                cutoff = (
                    db.query(models.CheckLog.seq)
                    .order_by(models.CheckLog.seq.desc())
                    .offset(GLOBAL_HISTORY_LIMIT - 1)
                    .limit(1)
                    .scalar()
                )
                db.query(models.CheckLog).filter(models.CheckLog.seq < cutoff).delete()
            db.commit()
        return result

    def get_check_history(self, url=None):
        with self._session_factory() as db:
            query = db.query(models.CheckLog)
            if url:
                query = query.filter(models.CheckLog.url == url)
            return [_to_result(row) for row in query.order_by(models.CheckLog.seq).all()]


def build_storage(backend: str = config.STORAGE_BACKEND, database_url: str = config.DATABASE_URL) -> Storage:
    if backend == "memory":
        logger.info("Using in-memory storage")
        return MemoryStorage()
    if backend == "database":
        engine = make_engine(database_url)
        Base.metadata.create_all(bind=engine)
        logger.info("Using database storage at %s", engine.url.render_as_string(hide_password=True))
        return DatabaseStorage(make_session_factory(engine))
    raise ValueError(f"Unknown storage backend: {backend!r}")
