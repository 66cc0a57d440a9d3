"""Feedback persistence keyed by message id."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from pagelens.models import Feedback
from pagelens.schemas import FeedbackRequest

logger = logging.getLogger(__name__)


def save_feedback(db: Session, payload: FeedbackRequest) -> Feedback:
    """Insert or replace the feedback stored for ``payload.message_id``.

    Args:
        db: Database session used for the write.
        payload: Validated feedback submission.

    Returns:
        Feedback: The persisted row.
    """
    record = db.query(Feedback).filter(Feedback.message_id == payload.message_id).first()
    if record is None:
        record = Feedback(message_id=payload.message_id)
        db.add(record)

    record.feedback_type = payload.feedback_type
    record.comment = payload.comment or None
    record.updated_at = datetime.utcnow()

    db.commit()
    db.refresh(record)
    logger.info("Stored %s feedback for message %s", payload.feedback_type, payload.message_id)
    return record
