# healthdesk/schemas.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire format is camelCase; python attributes stay snake_case."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# Auth
class SignUpIn(CamelModel):
    email: EmailStr
    password: str
    full_name: str = ""


class SignInIn(CamelModel):
    email: EmailStr
    password: str


class UserOut(CamelModel):
    id: str
    email: str
    full_name: str
    email_verified: bool
    organization_id: Optional[str] = None
    sso_provider: Optional[str] = None
    created_at: datetime


class SessionOut(CamelModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserOut


class OAuthAuthorizeIn(CamelModel):
    provider: str


class SSOAuthorizeIn(CamelModel):
    organization_id: Optional[str] = None
    email: Optional[str] = None


class AuthorizationUrlOut(CamelModel):
    success: bool = True
    authorization_url: str


class ConnectorAuthorizeIn(CamelModel):
    action: str
    connector: str = "gmail"


class ConnectorAuthorizeOut(AuthorizationUrlOut):
    data: dict


class SuccessOut(CamelModel):
    success: bool = True


# Lab reports
class LabTestResult(CamelModel):
    name: str
    value: str
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    status: Optional[Literal["normal", "high", "low", "critical"]] = None


class StructuredData(CamelModel):
    patient_name: Optional[str] = None
    date: Optional[str] = None
    test_type: Optional[str] = None
    test_results: List[LabTestResult] = []


class LabReportOut(CamelModel):
    id: str
    user_id: str
    file_name: str
    raw_text: str
    structured_data: Optional[StructuredData] = None
    ai_analysis: Optional[str] = None
    uploaded_at: datetime


class LabReportEnvelope(CamelModel):
    success: bool = True
    lab_report: LabReportOut


class LabReportList(CamelModel):
    success: bool = True
    lab_reports: List[LabReportOut]


class AnalyzeIn(CamelModel):
    text: str
    structured_data: Optional[StructuredData] = None


class AnalyzeOut(CamelModel):
    success: bool = True
    analysis: str


class ChatIn(CamelModel):
    report_id: str
    question: str
    user_id: str


class ChatOut(CamelModel):
    success: bool = True
    answer: str


# Notes
class NoteIn(CamelModel):
    user_id: str
    title: str
    content: str = ""
    tags: List[str] = []

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(tag).strip() for tag in value if str(tag).strip()]


class NoteOut(CamelModel):
    id: str
    user_id: str
    title: str
    content: str
    tags: List[str] = []
    created_at: datetime
    updated_at: Optional[datetime] = None


class NoteEnvelope(CamelModel):
    success: bool = True
    note: NoteOut


class NoteList(CamelModel):
    success: bool = True
    notes: List[NoteOut]
