"""Exceptions raised by the directory client, the mirror store and the reconciliation engine."""

from typing import Optional


class ScimMirrorError(Exception):
    """Base class for all SCIM mirror errors."""


class TokenError(ScimMirrorError):
    """The directory token endpoint did not return a usable access token."""


class DirectoryUnavailable(ScimMirrorError):
    """
    A directory request failed (non-2xx status, transport error, timeout or unparseable body).

    Raised while fetching a page, it aborts the fetch of that entity type: a partial
    directory read is never treated as authoritative.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RecordInvalid(ScimMirrorError):
    """A directory resource is missing a required field and is excluded from reconciliation."""

    def __init__(self, resource_id: Optional[str], reason: str):
        super().__init__(f"Invalid directory record {resource_id!r}: {reason}")
        self.resource_id = resource_id
        self.reason = reason


class ApplyFailure(ScimMirrorError):
    """The mirror store rejected the write for a single record."""

    def __init__(self, entity_id: str, reason: str):
        super().__init__(f"Failed to apply {entity_id!r}: {reason}")
        self.entity_id = entity_id
        self.reason = reason


class SnapshotLoadFailure(ScimMirrorError):
    """Reading the current mirror state failed."""
