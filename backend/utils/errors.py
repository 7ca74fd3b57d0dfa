"""
Billing error taxonomy.

Each error carries a stable ``code`` (returned in the JSON envelope) and the
HTTP ``status`` the web layer should answer with.
"""


class BillingError(Exception):
    code = "billing_error"
    status = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class StorageIOError(BillingError):
    """Persisted state could not be read or written. The operation did not happen."""
    code = "storage_unavailable"
    status = 503


class UpstreamCallError(BillingError):
    """The payment processor rejected or failed a request."""
    code = "upstream_error"
    status = 502


class NotFoundError(BillingError):
    code = "user_not_found"
    status = 404


class DuplicateError(BillingError):
    code = "user_exists"
    status = 409


class ValidationError(BillingError):
    """Unknown plan, bad plan choice or malformed webhook payload."""
    code = "invalid_request"
    status = 422
