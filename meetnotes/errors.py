"""Error kinds surfaced to HTTP clients.

Each error carries the status code it maps to; ``create_app`` renders them as
``{"error": message}``.
"""


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    status_code = 404


class InvalidInputError(ServiceError):
    status_code = 400


class UpstreamError(ServiceError):
    """An external AI or RAG call failed; the message wraps the upstream text."""

    status_code = 500
