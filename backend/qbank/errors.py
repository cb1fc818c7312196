"""
Error taxonomy shared by the workflow and assembly engines and the stores.
The API layer maps each class to one HTTP status (see qbank.main).
"""


class QBankError(Exception):
    """Base for all domain errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(QBankError):
    """Caller-fixable input problem. `errors` maps every violated field to its message."""

    def __init__(self, errors: dict[str, str], message: str | None = None):
        self.errors = dict(errors)
        fields = ", ".join(self.errors)
        super().__init__(message or f"Invalid fields: {fields}")


class PermissionDenied(QBankError):
    """Actor lacks rights for the requested action. Raised before any mutation."""


class StateError(QBankError):
    """Requested transition is illegal from the entity's current status."""


class StorageError(QBankError):
    """The blob store could not durably save or load a collection."""


class NotFoundError(QBankError):
    """No entity with the requested id."""
