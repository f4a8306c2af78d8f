"""Tests for form schema generation and submission validation."""
import pytest

from agent_secrets.forms.models import (
    FieldType,
    FormMode,
    RuleType,
    SecretDescriptor,
    SecretFormRequest,
    ValidationRule,
)
from agent_secrets.forms.schema import (
    DEFAULT_TITLE,
    build_form_schema,
    create_form_field,
    default_label,
    validate_submission,
)
from agent_secrets.vault.models import SecretConfig, SecretKind


def _request(*descriptors, **kwargs):
    return SecretFormRequest(secrets=list(descriptors), **kwargs)


class TestCreateFormField:
    """Tests for create_form_field."""

    @pytest.mark.parametrize("kind, expected", [
        (SecretKind.URL, FieldType.URL),
        (SecretKind.CONFIG, FieldType.JSON),
        (SecretKind.API_KEY, FieldType.PASSWORD),
        (SecretKind.PRIVATE_KEY, FieldType.PASSWORD),
        (SecretKind.CREDENTIAL, FieldType.PASSWORD),
        (None, FieldType.PASSWORD),
    ])
    def test_type_follows_kind(self, kind, expected):
        field = create_form_field("KEY", SecretConfig(kind=kind))
        assert field.type is expected

    def test_label_defaults_to_key(self):
        assert default_label("OPENAI_API_KEY") == "Openai Api Key"
        field = create_form_field("OPENAI_API_KEY", SecretConfig())
        assert field.label == "Openai Api Key"
        assert field.required is True
        assert field.sensitive is True

    def test_description_becomes_label(self):
        field = create_form_field("K", SecretConfig(description="Your token"))
        assert field.label == "Your token"

    def test_required_from_config(self):
        field = create_form_field("K", SecretConfig(required=False))
        assert field.required is False

    def test_overrides_applied_last(self):
        field = create_form_field(
            "WEBHOOK",
            SecretConfig(kind=SecretKind.URL),
            {"type": "textarea", "label": "Hook", "name": "ignored"},
        )
        assert field.type is FieldType.TEXTAREA
        assert field.label == "Hook"
        assert field.name == "WEBHOOK"

    def test_url_preset_has_pattern_rule(self):
        field = create_form_field("WEBHOOK", SecretConfig(kind=SecretKind.URL))
        assert [rule.type for rule in field.validation] == [RuleType.PATTERN]
        assert field.sensitive is False


class TestBuildFormSchema:
    """Tests for build_form_schema."""

    def test_one_field_per_descriptor(self):
        request = _request(
            SecretDescriptor(key="A"),
            SecretDescriptor(key="B", config=SecretConfig(kind=SecretKind.URL)),
        )
        schema = build_form_schema(request, now=1000.0)
        assert [f.name for f in schema.fields] == ["A", "B"]
        assert schema.title == DEFAULT_TITLE
        assert schema.max_submissions == 1
        assert schema.mode is FormMode.REQUESTER

    def test_expires_at(self):
        request = _request(SecretDescriptor(key="A"), expires_in=300)
        assert build_form_schema(request, now=1000.0).expires_at == 1300.0

    def test_default_ttl(self):
        request = _request(SecretDescriptor(key="A"))
        assert build_form_schema(request, 1000.0).expires_at == 1000.0 + 1800.0
        assert build_form_schema(request, 1000.0, 60).expires_at == 1060.0

    def test_unique_ids(self):
        request = _request(SecretDescriptor(key="A"))
        assert build_form_schema(request, 0).id != build_form_schema(request, 0).id

    def test_request_needs_a_secret(self):
        with pytest.raises(ValueError):
            SecretFormRequest(secrets=[])


class TestValidateSubmission:
    """Tests for validate_submission."""

    def test_valid(self):
        schema = build_form_schema(_request(SecretDescriptor(key="API_KEY")), 0)
        assert validate_submission(schema, {"API_KEY": "sk-test-123"}) == {}

    def test_missing_required(self):
        schema = build_form_schema(_request(SecretDescriptor(key="API_KEY")), 0)
        assert validate_submission(schema, {}) == {"API_KEY": "Api Key is required"}
        assert validate_submission(schema, {"API_KEY": ""}) == {
            "API_KEY": "Api Key is required"
        }

    def test_optional_may_be_empty(self):
        request = _request(
            SecretDescriptor(key="OPT", config=SecretConfig(required=False))
        )
        assert validate_submission(build_form_schema(request, 0), {}) == {}

    def test_non_string_rejected(self):
        schema = build_form_schema(_request(SecretDescriptor(key="K")), 0)
        assert validate_submission(schema, {"K": 12}) == {"K": "K must be a string"}

    def test_pattern_rule(self):
        request = _request(
            SecretDescriptor(key="HOOK", config=SecretConfig(kind=SecretKind.URL))
        )
        schema = build_form_schema(request, 0)
        assert validate_submission(schema, {"HOOK": "nope"}) == {
            "HOOK": "Please enter a valid URL"
        }
        assert validate_submission(schema, {"HOOK": "https://x.test"}) == {}

    def test_json_rule(self):
        request = _request(
            SecretDescriptor(key="CFG", config=SecretConfig(kind=SecretKind.CONFIG))
        )
        schema = build_form_schema(request, 0)
        assert validate_submission(schema, {"CFG": "{oops"}) == {
            "CFG": "Please enter valid JSON"
        }
        assert validate_submission(schema, {"CFG": '{"a": 1}'}) == {}

    def test_first_failing_rule_wins(self):
        rules = [
            ValidationRule(type=RuleType.MIN_LENGTH, value=8, message="too short"),
            ValidationRule(type=RuleType.PATTERN, value=r"^\d+$", message="digits"),
        ]
        request = _request(SecretDescriptor(key="PIN", field={"validation": rules}))
        schema = build_form_schema(request, 0)
        assert validate_submission(schema, {"PIN": "abc"}) == {"PIN": "too short"}
        assert validate_submission(schema, {"PIN": "abcdefgh"}) == {"PIN": "digits"}
        assert validate_submission(schema, {"PIN": "12345678"}) == {}

    def test_errors_for_every_field(self):
        request = _request(SecretDescriptor(key="A"), SecretDescriptor(key="B"))
        schema = build_form_schema(request, 0)
        assert set(validate_submission(schema, {})) == {"A", "B"}
