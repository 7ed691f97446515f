"""
Error types for nouns definitions, runtimes, and query contexts.
"""

from __future__ import annotations


class NounsError(Exception):
    """Base exception for all nouns errors."""

    def __init__(self, message: str, *, type_name: str | None = None):
        self.message = message
        self.type_name = type_name
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with the owning type if available."""
        if self.type_name:
            return f"[{self.type_name}] {self.message}"
        return self.message


class NotFoundError(NounsError):
    """
    Raised when something addressed by name or identity does not exist.

    Read paths (``Runtime.get``) return ``None`` instead; this is only raised
    for explicit lookups such as ``Runtime.call`` or ``QueryContext.get``.
    """

    def __init__(self, kind: str, key: str, *, type_name: str | None = None):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}", type_name=type_name)


class InstanceNotFoundError(NotFoundError):
    """Raised when an instance id cannot be resolved."""

    def __init__(self, key: str, *, type_name: str | None = None):
        super().__init__("Instance", key, type_name=type_name)


class FunctionNotFoundError(NotFoundError):
    """Raised when ``call`` names a function the definition does not declare."""

    def __init__(self, key: str, *, type_name: str | None = None):
        super().__init__("Function", key, type_name=type_name)


class CascadeNotFoundError(NotFoundError):
    """Raised when a cascade or fuzzy hook names an unknown field."""

    def __init__(self, key: str, *, type_name: str | None = None):
        super().__init__("Cascade", key, type_name=type_name)


class DefinitionError(NounsError):
    """
    Raised when a definition cannot be constructed at all.

    Examples:
    - Missing ``$type``
    - ``extend()`` called with an identity
    - Non-integer ``$version``
    """

    pass


class VersionConflictError(NounsError):
    """
    Raised when versions cannot be reconciled.

    Examples:
    - Stored version is newer than the definition version
    - Two migrations target the same version
    """

    def __init__(
        self,
        message: str,
        *,
        stored: int | None = None,
        current: int | None = None,
        type_name: str | None = None,
    ):
        self.stored = stored
        self.current = current
        super().__init__(message, type_name=type_name)


class MigrationError(NounsError):
    """
    Raised when a migration handler fails.

    The original exception is chained as ``__cause__``. ``applied`` holds the
    last version that completed and was persisted.
    """

    def __init__(self, version: int, applied: int, *, type_name: str | None = None):
        self.version = version
        self.applied = applied
        super().__init__(
            f"Migration to version {version} failed (last applied: {applied})",
            type_name=type_name,
        )


class RuntimeStateError(NounsError):
    """Raised when an operation is attempted in the wrong runtime state."""

    pass


class MissingCollaboratorError(NounsError):
    """Raised when an async hook needs a collaborator that was not supplied."""

    def __init__(self, role: str, *, type_name: str | None = None):
        self.role = role
        super().__init__(f"No {role} collaborator configured", type_name=type_name)
