"""History Pydantic schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from expense_tracker.common.constants import ExpenseEventType, ReportEventType


class PerformerBrief(BaseModel):
    id: uuid.UUID
    name: str


class ReportHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    report_id: int
    event_type: ReportEventType
    event_date: datetime
    details: Optional[str] = None
    performed_by: Optional[PerformerBrief] = None


class ExpenseHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    expense_id: int
    report_id: Optional[int] = None
    event_type: ExpenseEventType
    event_date: datetime
    details: Optional[str] = None
    performed_by: Optional[PerformerBrief] = None


class CommentCreate(BaseModel):
    """Manual annotation on a report's history."""

    text: str = Field(..., min_length=1, max_length=2000)
