"""
Business submission routes - public application form and admin moderation
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from datetime import datetime, timezone
from typing import Optional

from ..db import get_db
from ..exceptions import InvalidRequestError, SubmissionNotFoundError
from ..models import Submission
from ..schemas import (
    SubmissionCreate,
    SubmissionListResponse,
    SubmissionOut,
    SubmissionResponse,
    SubmissionStatus,
    SubmissionUpdate,
)
from ..logger import logger

router = APIRouter(tags=["Submissions"])

VALID_STATUSES = [s.value for s in SubmissionStatus]
REVIEWED_STATUSES = (SubmissionStatus.APPROVED.value, SubmissionStatus.REJECTED.value)


def _check_status(status: str) -> str:
    if status not in VALID_STATUSES:
        raise InvalidRequestError(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    return status


async def _get_submission(db: AsyncSession, submission_id: str) -> Submission:
    res = await db.execute(select(Submission).filter(Submission.id == submission_id))
    submission = res.scalar_one_or_none()
    if not submission:
        logger.warning(f"Submission not found: {submission_id}")
        raise SubmissionNotFoundError(submission_id)
    return submission


@router.post("/submissions", response_model=SubmissionResponse, status_code=201)
async def create_submission(body: SubmissionCreate, db: AsyncSession = Depends(get_db)):
    """Public "nominate a business" form"""
    submission = Submission(status=SubmissionStatus.PENDING.value, **body.model_dump())
    db.add(submission)
    await db.commit()

    logger.info(
        f"Submission received: {submission.id}",
        extra={"submission_id": submission.id, "category": submission.category}
    )
    return SubmissionResponse(submission=SubmissionOut.model_validate(submission))


@router.get("/admin/submissions", response_model=SubmissionListResponse)
async def list_submissions(
    status: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    query = select(Submission)
    if status:
        query = query.filter(Submission.status == _check_status(status))
    res = await db.execute(query.order_by(desc(Submission.created_at)))
    return SubmissionListResponse(
        submissions=[SubmissionOut.model_validate(s) for s in res.scalars().all()]
    )


@router.get("/admin/submissions/{submission_id}", response_model=SubmissionResponse)
async def get_submission(submission_id: str, db: AsyncSession = Depends(get_db)):
    submission = await _get_submission(db, submission_id)
    return SubmissionResponse(submission=SubmissionOut.model_validate(submission))


@router.patch("/admin/submissions/{submission_id}", response_model=SubmissionResponse)
async def update_submission(
    submission_id: str,
    body: SubmissionUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Moderation update. Only the admin moves a submission between statuses;
    reaching approved or rejected stamps who reviewed it and when.
    """
    submission = await _get_submission(db, submission_id)

    if body.status is not None:
        submission.status = _check_status(body.status)
        if body.status in REVIEWED_STATUSES:
            submission.reviewed_at = datetime.now(timezone.utc).replace(tzinfo=None)
            submission.reviewed_by = "admin"
    if body.admin_notes is not None:
        submission.admin_notes = body.admin_notes
    await db.commit()

    logger.info(
        f"Submission updated: {submission_id}",
        extra={"submission_id": submission_id, "status": submission.status}
    )
    return SubmissionResponse(submission=SubmissionOut.model_validate(submission))


@router.delete("/admin/submissions/{submission_id}")
async def delete_submission(submission_id: str, db: AsyncSession = Depends(get_db)):
    submission = await _get_submission(db, submission_id)
    await db.delete(submission)
    await db.commit()
    logger.info(f"Submission deleted: {submission_id}")
    return {"success": True}
