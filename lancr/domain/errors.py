"""
Error taxonomy shared by every core operation.

Callers receive either the operation's value or one of these exceptions.
Storage failures keep the original SQLAlchemy exception as ``__cause__``.
"""

from typing import Optional


class LancrError(Exception):
    """Base class for all errors raised by the tracker core"""


class ValidationError(LancrError):
    """Input rejected before or during an operation (bad payload, bad rate, nothing to invoice)"""


class NotFoundError(LancrError):
    """The targeted identity does not exist in storage"""

    def __init__(self, entity: str, entity_id: Optional[int] = None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} {entity_id} not found")


class StorageError(LancrError):
    """Underlying persistence failure; not recoverable locally"""


def from_pydantic(error) -> ValidationError:
    """Turn a pydantic ValidationError into ours, keeping a readable message"""
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'value'}: {err['msg']}"
        for err in error.errors()
    )
    return ValidationError(details)
