"""Feedback submission endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pagelens.database import get_db
from pagelens.schemas import ErrorResponse, FeedbackRequest, FeedbackResponse
from pagelens.services.feedback import save_feedback

router = APIRouter(prefix="/api", tags=["Feedback"])


@router.post("/feedback", response_model=FeedbackResponse, responses={400: {"model": ErrorResponse}})
def submit_feedback(body: FeedbackRequest, db: Session = Depends(get_db)):
    """Store good/bad feedback for a generated message.

    Args:
        body: Message id, verdict and optional comment.
        db: Database session injected by FastAPI.

    Returns:
        FeedbackResponse: Confirmation message.
    """
    save_feedback(db, body)
    return FeedbackResponse(message="Feedback submitted successfully")
