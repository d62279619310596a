"""
Registry error taxonomy.

Every request-level failure is raised as a RegistryError subclass and turned
into the Distribution API error body by the handler registered in routes.py:

    {"errors": [{"code": "<CODE>", "message": "<message>"}]}
"""


class RegistryError(Exception):
    """Base class for errors reported to registry clients."""

    code = "UNKNOWN"
    status = 500
    default_message = "unknown error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"errors": [{"code": self.code, "message": self.message}]}


class NameUnknown(RegistryError):
    code = "NAME_UNKNOWN"
    status = 404
    default_message = "repository not found"


class ManifestUnknown(RegistryError):
    code = "MANIFEST_UNKNOWN"
    status = 404
    default_message = "manifest not found"


class BlobUnknown(RegistryError):
    code = "BLOB_UNKNOWN"
    status = 404
    default_message = "blob not found"


class DigestInvalid(RegistryError):
    code = "DIGEST_INVALID"
    status = 400
    default_message = "invalid digest format"


class PaginationNumberInvalid(RegistryError):
    code = "PAGINATION_NUMBER_INVALID"
    status = 400
    default_message = "Invalid value for n parameter"


class Unsupported(RegistryError):
    code = "UNSUPPORTED"
    status = 406
    default_message = "requested media type not supported or not available"


class Unauthorized(RegistryError):
    code = "UNAUTHORIZED"
    status = 401
    default_message = "authentication required"


class InvalidRequest(RegistryError):
    code = "INVALID_REQUEST"
    status = 400
    default_message = "Invalid request"


class Denied(RegistryError):
    """Mutation refused because it would break the graph invariants."""

    code = "DENIED"
    status = 409
    default_message = "requested operation is not allowed"


class DatabaseValidationError(ValueError):
    """
    Structural or referential validation of a database document failed.

    The individual problems are kept in ``errors`` so callers can render the
    full multi-line report.
    """

    def __init__(self, message: str, errors: list[str]):
        super().__init__(message)
        self.errors = list(errors)

    def report(self) -> str:
        return "\n".join([str(self)] + [f"  - {err}" for err in self.errors])


class TemplateError(ValueError):
    """A template file or push payload is malformed."""
