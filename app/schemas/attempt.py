from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class AttemptCreate(BaseModel):
    course_id: str = Field(alias="courseId")
    level: int

    class Config:
        populate_by_name = True


class AttemptSubmissionAdd(BaseModel):
    submission_id: str = Field(alias="submissionId")

    class Config:
        populate_by_name = True


class AttemptComplete(BaseModel):
    user_feedback: Optional[str] = Field(default=None, alias="userFeedback")

    class Config:
        populate_by_name = True


class AttemptOut(BaseModel):
    id: str
    user_id: int
    course_id: str
    level: int
    submission_ids: List[str]
    total_questions: int
    passed_count: int
    overall_status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    user_feedback: Optional[str] = None

    class Config:
        from_attributes = True


class SubmissionOut(BaseModel):
    id: str
    challenge_id: Optional[str] = None
    status: Optional[str] = None
    passed: Optional[bool] = None
    submitted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AttemptDetails(AttemptOut):
    submissions: List[SubmissionOut] = []
