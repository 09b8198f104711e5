from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import (
    PaymentMethod,
    RecurringInterval,
    ReportFrequency,
    ReportStatus,
    TransactionType,
)

CalendarDate = date


class TransactionIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: TransactionType
    amount_cents: int = Field(..., gt=0, le=100_000_000_000)
    category: str = Field(..., min_length=1, max_length=100)
    date: date
    payment_method: PaymentMethod = PaymentMethod.cash
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None

    @model_validator(mode="after")
    def _interval_required_when_recurring(self) -> "TransactionIn":
        if self.is_recurring and self.recurring_interval is None:
            raise ValueError("Recurring transactions require a recurring interval")
        return self


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[TransactionType] = None
    amount_cents: Optional[int] = Field(default=None, gt=0, le=100_000_000_000)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    date: Optional[CalendarDate] = None
    payment_method: Optional[PaymentMethod] = None
    is_recurring: Optional[bool] = None
    recurring_interval: Optional[RecurringInterval] = None


class ReportSettingUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    is_enabled: Optional[bool] = Field(default=None, alias="isEnabled")
    frequency: Optional[ReportFrequency] = None


class ReportSettingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    user_id: int = Field(serialization_alias="userId")
    is_enabled: bool = Field(serialization_alias="isEnabled")
    frequency: ReportFrequency
    last_sent_date: Optional[datetime] = Field(serialization_alias="lastSentDate")
    next_report_date: datetime = Field(serialization_alias="nextReportDate")


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int = Field(serialization_alias="userId")
    sent_date: datetime = Field(serialization_alias="sentDate")
    period: str
    status: ReportStatus
    created_at: datetime = Field(serialization_alias="createdAt")


class Pagination(BaseModel):
    page_number: int = Field(default=1, ge=1, alias="pageNumber")
    page_size: int = Field(default=20, ge=1, le=100, alias="pageSize")

    model_config = ConfigDict(populate_by_name=True)


class ReportPage(BaseModel):
    items: list[ReportOut]
    total_count: int = Field(serialization_alias="totalCount")
    total_pages: int = Field(serialization_alias="totalPages")
    page_number: int = Field(serialization_alias="pageNumber")
    page_size: int = Field(serialization_alias="pageSize")
