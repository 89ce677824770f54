import os

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pos.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"


class Base(DeclarativeBase):
    pass


def _enable_sqlite_fk(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def make_engine(url: str | None = None, **kwargs):
    """
    url 생략 시 DATABASE_URL 사용.
    sqlite: 외래키 강제 + 스레드 공유 허용
    그 외(Postgres): READ COMMITTED 격리수준
    """
    url = url or DATABASE_URL
    kwargs.setdefault("echo", SQL_ECHO)
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_fk)
        return engine
    kwargs.setdefault("isolation_level", "READ COMMITTED")
    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


# 스크립트(init_db, seed)용 기본값. 앱은 create_app(session_factory=...)로 주입 가능
engine = make_engine()
SessionLocal = make_session_factory(engine)
