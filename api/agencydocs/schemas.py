
from datetime import datetime
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field
from typing import Annotated, List, Optional

from .models import DocumentStatus, RenewalStatus, Role
from .utils import as_utc

# stored columns are aware UTC
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]

class UserRegister(BaseModel):
    username: str = Field(min_length=1)
    email: EmailStr
    role: Role
    agency_id: Optional[int] = None
    contact_number: Optional[str] = None
    address: Optional[str] = None

class UserUpdate(BaseModel):
    # role and agency_id are not editable; unknown fields are rejected
    model_config = ConfigDict(extra="forbid")

    username: Optional[str] = None
    email: Optional[EmailStr] = None
    contact_number: Optional[str] = None
    address: Optional[str] = None

class SignatureRequest(BaseModel):
    recipient_id: Optional[int] = None
    message: Optional[str] = None

class DocumentStatusUpdate(BaseModel):
    status: DocumentStatus

class InvitationSend(BaseModel):
    recipient_email: EmailStr
    message: Optional[str] = None

class InvitationAccept(BaseModel):
    token: str = Field(min_length=1)

class RenewalCreate(BaseModel):
    user_id: int
    item_type: str = Field(min_length=1)
    item_name: str = Field(min_length=1)
    current_expiration_date: UtcDatetime
    new_expiration_date: Optional[UtcDatetime] = None
    document_id: Optional[int] = None
    status: Optional[RenewalStatus] = None
    notes: Optional[str] = None

class RenewalUpdate(BaseModel):
    item_type: Optional[str] = None
    item_name: Optional[str] = None
    current_expiration_date: Optional[UtcDatetime] = None
    new_expiration_date: Optional[UtcDatetime] = None
    document_id: Optional[int] = None
    status: Optional[RenewalStatus] = None
    notes: Optional[str] = None
    notification_sent: Optional[bool] = None

class EventCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    start: UtcDatetime
    end: UtcDatetime
    all_day: bool = False
    location: Optional[str] = None
    attendees: List[int] = []

class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start: Optional[UtcDatetime] = None
    end: Optional[UtcDatetime] = None
    all_day: Optional[bool] = None
    location: Optional[str] = None
    attendees: Optional[List[int]] = None
