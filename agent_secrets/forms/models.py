"""
Form Models — Schemas, sessions and submissions of secret collection forms.

A session moves from ``active`` to either ``completed`` (enough submissions)
or ``expired`` (deadline passed or closed). Both are terminal.
"""
import asyncio
from enum import Enum
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..vault.models import SecretConfig, SecretContext


class FieldType(str, Enum):
    TEXT = "text"
    PASSWORD = "password"
    URL = "url"
    EMAIL = "email"
    NUMBER = "number"
    JSON = "json"
    TEXTAREA = "textarea"
    CODE = "code"
    SELECT = "select"


class RuleType(str, Enum):
    REQUIRED = "required"
    MIN_LENGTH = "min_length"
    MAX_LENGTH = "max_length"
    PATTERN = "pattern"
    CUSTOM = "custom"


class FormMode(str, Enum):
    REQUESTER = "requester"
    INLINE = "inline"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"


class ValidationRule(BaseModel):
    """One check applied to a submitted field value.

    ``value`` is the bound for length rules and the regular expression for
    pattern rules; custom rules call ``validator``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: RuleType
    message: str
    value: Any = None
    validator: Optional[Callable[[str], bool]] = None


class FieldOption(BaseModel):
    value: str
    label: str


class FormField(BaseModel):
    name: str
    label: str
    type: FieldType = FieldType.PASSWORD
    required: bool = True
    sensitive: bool = True
    description: Optional[str] = None
    placeholder: Optional[str] = None
    default_value: Optional[str] = None
    rows: Optional[int] = None
    options: list[FieldOption] = Field(default_factory=list)
    validation: list[ValidationRule] = Field(default_factory=list)


class FormSchema(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    fields: list[FormField]
    submit_label: str = "Submit Securely"
    mode: FormMode = FormMode.REQUESTER
    expires_at: float
    max_submissions: int = Field(default=1, ge=1)
    success_message: str = "Thank you! Your information has been securely received."


class SecretDescriptor(BaseModel):
    """A secret requested by a form, with optional field overrides."""

    key: str = Field(min_length=1)
    config: SecretConfig = Field(default_factory=SecretConfig)
    field: Optional[dict[str, Any]] = None


class SecretFormRequest(BaseModel):
    secrets: list[SecretDescriptor] = Field(min_length=1)
    title: Optional[str] = None
    description: Optional[str] = None
    mode: FormMode = FormMode.REQUESTER
    expires_in: Optional[float] = Field(default=None, gt=0)
    max_submissions: int = Field(default=1, ge=1)


class FormSubmission(BaseModel):
    form_id: str
    session_id: str
    data: dict[str, Any]
    submitted_at: float
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class FormEvent(BaseModel):
    """Notification put on the caller's queue for a session."""

    type: Literal["submitted", "completed", "expired", "closed"]
    session_id: str
    submission: Optional[FormSubmission] = None


class FormSession(BaseModel):
    """Registry entry of one form; ``events`` is the caller's queue, if any."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    form_id: str
    tunnel_id: str
    port: int
    url: str
    form_schema: FormSchema
    request: SecretFormRequest
    context: SecretContext
    created_at: float
    expires_at: float
    submissions: list[FormSubmission] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    events: Optional[asyncio.Queue] = Field(default=None, exclude=True)

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE


class SubmissionResult(BaseModel):
    accepted: bool
    status: Optional[SessionStatus] = None
    errors: Optional[dict[str, str]] = None
    message: Optional[str] = None
