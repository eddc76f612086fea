"""
Background tasks run by an RQ worker.
"""

from typing import Any

from sqlmodel import Session

from nursecred.core.config import settings
from nursecred.core.logging import get_logger
from nursecred.db.session import build_engine
from nursecred.services.user_service import UserService

logger = get_logger(__name__)

# Each worker process needs its own database connection
engine = build_engine(settings.SQLALCHEMY_DATABASE_URI)


def generate_missing_npks_task() -> dict[str, Any]:
    """
    Assign NPKs to every perawat lacking a well-formed one.

    Returns:
        Task result dictionary
    """
    logger.info("Starting NPK repair task")
    with Session(engine) as session:
        repaired = UserService.generate_missing_npks(session)

    logger.info(f"Completed NPK repair task: {repaired} users updated")
    return {
        "task_name": "generate_missing_npks",
        "status": "completed",
        "repaired": repaired,
    }
