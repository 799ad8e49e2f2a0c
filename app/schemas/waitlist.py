from pydantic import BaseModel, EmailStr, Field, validator
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime
import uuid

Role = Literal["golfer", "fitter_builder", "creator", "league_captain", "retailer_other"]
SpendBracket = Literal["<300", "300_750", "750_1500", "1500_3000", "3000_5000", "5000_plus"]
Frequency = Literal["never", "yearly_1_2", "few_per_year", "monthly", "weekly_plus"]

# Answer keys every submission must carry
REQUIRED_ANSWER_KEYS = (
    "role",
    "share_channels",
    "learn_channels",
    "spend_bracket",
    "uses",
    "buy_frequency",
    "share_frequency",
    "city_region",
)


class ApplicantIdentity(BaseModel):
    email: EmailStr
    display_name: str = Field(..., min_length=1)


class WaitlistAnswers(BaseModel):
    """Validated form of the applicant questionnaire."""
    role: Role
    share_channels: List[str]
    learn_channels: List[str]
    spend_bracket: SpendBracket
    uses: List[str]
    buy_frequency: Frequency
    share_frequency: Frequency
    city_region: str = Field(..., min_length=2)
    terms_accepted: bool
    invite_code: Optional[str] = None
    referral_code: Optional[str] = None
    contact_phone: Optional[str] = None  # Honeypot field

    @validator("terms_accepted")
    def terms_must_be_accepted(cls, v):
        if v is not True:
            raise ValueError("terms must be accepted")
        return v

    class Config:
        extra = "allow"


class WaitlistSubmitRequest(BaseModel):
    email: str
    display_name: str
    answers: Dict[str, Any]


class WaitlistSubmitResponse(BaseModel):
    application_id: uuid.UUID
    status: str
    score: int
    position: Optional[int] = None
    estimated_days: Optional[int] = None
    referral_status: Optional[str] = None
    invite_status: Optional[str] = None
    message: str


class ApplicationStatusResponse(BaseModel):
    application_id: uuid.UUID
    status: str
    position: Optional[int] = None
    total_waiting: Optional[int] = None
    estimated_days: Optional[int] = None
    submitted_at: datetime
    decided_at: Optional[datetime] = None
    referral_code: Optional[str] = None  # only once admitted


class WaitlistEntry(BaseModel):
    position: int
    application_id: uuid.UUID
    display_name: str
    score: int
    status: str
    submitted_at: datetime


class BetaSummary(BaseModel):
    cap: int
    admitted: int
    remaining: int
    public_admission_enabled: bool
    waitlist_count: int
