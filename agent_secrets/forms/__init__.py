"""Secret Forms — Tunnel-backed, ephemeral forms that collect secrets."""

from .manager import FormSessionManager
from .models import (
    FieldType,
    FormEvent,
    FormField,
    FormMode,
    FormSchema,
    FormSession,
    FormSubmission,
    RuleType,
    SecretDescriptor,
    SecretFormRequest,
    SessionStatus,
    SubmissionResult,
    ValidationRule,
)
from .ports import PortPool
from .schema import build_form_schema, create_form_field, validate_submission
from .server import FormServer

__all__ = [
    "FieldType",
    "FormEvent",
    "FormField",
    "FormMode",
    "FormSchema",
    "FormServer",
    "FormSession",
    "FormSessionManager",
    "FormSubmission",
    "PortPool",
    "RuleType",
    "SecretDescriptor",
    "SecretFormRequest",
    "SessionStatus",
    "SubmissionResult",
    "ValidationRule",
    "build_form_schema",
    "create_form_field",
    "validate_submission",
]
