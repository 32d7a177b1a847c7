"""
Transaction report request/response models.
"""

import re
from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

PAYMENT_PROVIDERS = ("stripe", "zalopay", "vnpay")
TRANSACTION_STATUSES = ("success", "pending", "failed", "refunded")


class TransactionReportRequest(BaseModel):
    """
    Criteria for an e-mailed transaction report.
    Empty provider/status lists mean "All".
    """

    time_frame: Literal["7", "14", "30", "90", "custom"] = "30"
    custom_start_date: date | None = None
    custom_end_date: date | None = None
    providers: list[Literal["stripe", "zalopay", "vnpay"]] = Field(default_factory=list)
    statuses: list[Literal["success", "pending", "failed", "refunded"]] = Field(
        default_factory=lambda: ["success"]
    )
    recipients: list[str] = Field(..., min_length=1, description="E-mail addresses")

    @field_validator("recipients")
    @classmethod
    def _normalize_recipients(cls, value: list[str]) -> list[str]:
        cleaned = []
        for email in value:
            email = email.strip().lower()
            if not EMAIL_PATTERN.match(email):
                raise ValueError(f"Invalid email address: {email!r}")
            if email not in cleaned:
                cleaned.append(email)
        return cleaned

    @model_validator(mode="after")
    def _custom_range_complete(self):
        if self.time_frame == "custom" and (not self.custom_start_date or not self.custom_end_date):
            raise ValueError("Please select start and end dates")
        return self


class TransactionReportResult(BaseModel):
    start_date: date
    end_date: date
    recipients: int
    transactions: int
    message: str
