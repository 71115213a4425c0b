"""
Proxy error taxonomy.
Each error carries the HTTP status and user-facing message it maps to;
backend/main.py turns them into `{message, error?}` JSON bodies.
"""

from typing import Optional


class ProxyError(RuntimeError):
    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_body(self) -> dict:
        body = {"message": self.message}
        if self.cause is not None:
            body["error"] = str(self.cause) or self.cause.__class__.__name__
        return body


class InvalidUrl(ProxyError):
    """Target address is missing, malformed or cannot be parsed as an absolute URL."""
    status_code = 400


class FetchFailed(ProxyError):
    """Upstream could not be reached (DNS, TLS, timeout, connection reset...)."""
    status_code = 500

    def __init__(self, cause: BaseException, message: str = "Failed to proxy the request"):
        super().__init__(message, cause)


class ClientDisconnected(ProxyError):
    """The inbound client went away before the upstream fetch completed."""
    # nginx convention for "client closed request"
    status_code = 499
