"""
Authenticated caller context.

Every ledger, quota and reporting operation receives the acting user
explicitly instead of looking it up from ambient state.
"""

from dataclasses import dataclass

from .errors import ValidationError


@dataclass(frozen=True)
class UserContext:
    """The authenticated user an operation acts on behalf of."""
    user_id: str

    def __post_init__(self):
        if not isinstance(self.user_id, str) or not self.user_id.strip():
            raise ValidationError("user_id is required and cannot be empty", field="user_id")
