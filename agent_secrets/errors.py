"""Exception hierarchy for agent_secrets.

Expected outcomes (unknown key, denied access, invalid form input) are
signalled by return values; only the failures below are raised.
"""


class SecretsError(Exception):
    """Base class for every error raised by agent_secrets."""


class CryptoError(SecretsError):
    """A stored payload could not be authenticated or decoded."""


class EncryptionUnavailableError(CryptoError):
    """No encryption salt is configured, so the cipher is disabled."""


class InfrastructureError(SecretsError):
    """A collaborator (backing store, tunnel, HTTP server) failed."""


class TunnelError(InfrastructureError):
    """The tunnel backend could not open a tunnel."""


class PortExhaustedError(InfrastructureError):
    """Every port in the form server pool is leased or bound."""


class FormServerError(InfrastructureError):
    """The per-session HTTP server could not be started."""


class SubmissionError(SecretsError):
    """A validated form submission could not be persisted."""

    def __init__(self, message: str, stored: list[str] | None = None):
        super().__init__(message)
        self.stored = list(stored or [])


class SessionClosedError(SubmissionError):
    """The form session was closed while a submission was in flight."""
