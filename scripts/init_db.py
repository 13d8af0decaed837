import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text

from creditapi.config import settings
from creditapi.database.connection import build_engine
from creditapi.logging_config import init_logging
from creditapi.models.base import Base

# 테이블 등록을 위해 모델 모듈 로드
from creditapi.models import admin, credits  # noqa: F401

import logging

logger = logging.getLogger(__name__)


def init_db():
    """데이터베이스 초기화 (스키마 + 테이블)"""
    engine = build_engine(settings)
    try:
        if engine.dialect.name == "postgresql":
            with engine.connect() as conn:
                conn.execute(
                    text(f"CREATE SCHEMA IF NOT EXISTS {settings.POSTGRES_SCHEMA}")
                )
                conn.commit()

        Base.metadata.create_all(bind=engine)
        logger.info(
            f"Database initialized successfully with schema: {settings.POSTGRES_SCHEMA}"
        )
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise
    finally:
        engine.dispose()


if __name__ == "__main__":
    init_logging(settings.LOG_LEVEL)
    init_db()
