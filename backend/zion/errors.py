"""Error taxonomy shared by services and request handlers.

Every error carries the HTTP status it maps to and a short, user-safe
message. Diagnostic detail (upstream bodies, raw model output) lives on
dedicated attributes and is only ever logged or written to the failure
record, never rendered to the client.
"""


class ZionError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(ZionError):
    """Missing or malformed client input."""

    status_code = 400


class UpstreamConfigurationError(ZionError):
    """A required endpoint or credential is not configured."""

    status_code = 500


class UpstreamRequestFailure(ZionError):
    """An outbound call to the CRM, the store or the model failed."""

    status_code = 502


class GenerationContractViolation(ZionError):
    """Model output never became a valid document."""

    status_code = 502


class StoreUnavailable(UpstreamConfigurationError):
    pass


class StoreRequestFailed(UpstreamRequestFailure):
    pass


class WebhookNotConfigured(UpstreamConfigurationError):
    pass


class WebhookRejected(UpstreamRequestFailure):
    def __init__(self, message: str, status: int | None = None, body: str = ""):
        self.status = status
        self.body = body[:300]
        super().__init__(message)


class ProposalGenerationFailed(GenerationContractViolation):
    def __init__(self, message: str, raw1: str = "", raw2: str = "", problems: list[str] | None = None):
        self.raw1 = raw1
        self.raw2 = raw2
        self.problems = problems or []
        super().__init__(message)


class ProposalNotFound(ZionError):
    status_code = 404
