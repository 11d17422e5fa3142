import logging

import redis
from fastapi import APIRouter, HTTPException, status
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from callsync.core.config import settings
from callsync.core.database import SessionLocal

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/ready")
def ready():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Database not ready: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="database unavailable") from exc
    finally:
        db.close()
    if settings.publish_events or settings.scheduler_backend == "celery":
        redis_client = redis.Redis.from_url(settings.redis_url)
        try:
            redis_client.ping()
        except RedisError as exc:
            logger.error("Redis not ready: %s", exc)
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="redis unavailable") from exc
        finally:
            redis_client.close()
    return {"status": "ready"}
