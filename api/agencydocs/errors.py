"""Error kinds shared by every service.

Services raise these; ``main`` renders them as ``{"error": kind, "detail": message}``
with a fixed HTTP status per kind.
"""


class DomainError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(DomainError):
    kind = "not_found"
    status_code = 404


class Forbidden(DomainError):
    kind = "forbidden"
    status_code = 403


class Invalid(DomainError):
    kind = "invalid"
    status_code = 400


class Conflict(DomainError):
    kind = "conflict"
    status_code = 409


class ExpiredToken(DomainError):
    kind = "expired_token"
    status_code = 410


class UpstreamFailure(DomainError):
    kind = "upstream_failure"
    status_code = 502
