"""
Tests for credential redaction and audit logging.

CRITICAL: token values must never reach a log record.
"""

import logging

from prodit.credentials.redaction import (
    REDACTED_VALUE,
    AuditEventType,
    CredentialAuditLogger,
    CredentialLoggingFilter,
    is_credential_secret_key,
    redact_credential_data,
    redact_credential_value,
)


# ============================================================================
# TEST SUITE: REDACTION HELPERS
# ============================================================================

class TestRedactionHelpers:

    def test_secret_keys_detected(self):
        assert is_credential_secret_key("access_token")
        assert is_credential_secret_key("refresh_token")
        assert is_credential_secret_key("client_secret")
        assert is_credential_secret_key("Authorization")

    def test_allowed_keys_not_secret(self):
        assert not is_credential_secret_key("token_type")
        assert not is_credential_secret_key("tenant_id")
        assert not is_credential_secret_key("tenant_name")

    def test_bearer_value_redacted(self):
        result = redact_credential_value("Authorization: Bearer abc.def.ghi")
        assert "abc.def.ghi" not in result
        assert REDACTED_VALUE in result

    def test_form_encoded_secrets_redacted(self):
        result = redact_credential_value("grant_type=refresh_token&refresh_token=xyz&client_secret=shh")
        assert "xyz" not in result
        assert "shh" not in result
        assert "grant_type=refresh_token" in result

    def test_nested_data_redacted(self):
        data = {
            "error": "invalid_grant",
            "details": [{"refresh_token": "xyz", "tenant_id": "t-1"}],
        }

        result = redact_credential_data(data)

        assert result["error"] == "invalid_grant"
        assert result["details"][0]["refresh_token"] == REDACTED_VALUE
        assert result["details"][0]["tenant_id"] == "t-1"
        # Original untouched
        assert data["details"][0]["refresh_token"] == "xyz"

    def test_non_string_values_pass_through(self):
        assert redact_credential_data(42) == 42
        assert redact_credential_data(None) is None


# ============================================================================
# TEST SUITE: LOGGING FILTER AND AUDIT LOGGER
# ============================================================================

class TestCredentialLoggingFilter:

    def _record(self, msg, **extra):
        record = logging.LogRecord("prodit.credentials", logging.INFO, __file__, 1, msg, None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_filter_redacts_message(self):
        record = self._record("sent Bearer abc123")

        assert CredentialLoggingFilter().filter(record) is True
        assert "abc123" not in record.msg

    def test_filter_redacts_extra_fields(self):
        record = self._record(
            "token refreshed",
            access_token="abc",
            provider_error={"refresh_token": "xyz", "error": "invalid_grant"},
            tenant_id="t-1",
        )

        CredentialLoggingFilter().filter(record)

        assert record.access_token == REDACTED_VALUE
        assert record.provider_error["refresh_token"] == REDACTED_VALUE
        assert record.provider_error["error"] == "invalid_grant"
        assert record.tenant_id == "t-1"


class TestCredentialAuditLogger:

    def test_audit_event_fields(self, caplog):
        with caplog.at_level(logging.INFO, logger="credentials.audit"):
            CredentialAuditLogger(owner_id=7).log(
                event_type=AuditEventType.CREDENTIAL_REFRESHED,
                tenant_id="tenant-1",
                tenant_name="Demo Co",
                metadata={"trigger": "http_401", "refresh_token": "xyz"},
            )

        record = caplog.records[-1]
        assert record.event_type == "credential.refreshed"
        assert record.owner_id == 7
        assert record.tenant_id == "tenant-1"
        assert record.trigger == "http_401"
        assert record.refresh_token == REDACTED_VALUE

    def test_log_error_redacts_message(self, caplog):
        with caplog.at_level(logging.INFO, logger="credentials.audit"):
            CredentialAuditLogger(owner_id=7).log_error("tenant-1", "failed with Bearer abc123")

        record = caplog.records[-1]
        assert record.event_type == "credential.error"
        assert "abc123" not in record.error
