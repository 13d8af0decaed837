from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session, sessionmaker


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """컨텍스트 매니저를 사용한 데이터베이스 세션 관리"""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def read_session(session_factory: sessionmaker) -> Iterator[Session]:
    """읽기 전용 세션 - 커밋 없이 종료"""
    db = session_factory()
    try:
        yield db
    finally:
        if db.in_transaction():
            db.rollback()
        db.close()
