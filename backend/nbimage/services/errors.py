"""
Error taxonomy shared by the services.

ValidationError / DuplicateNameError are raised before any external write
and carry a message safe to show to the user. ExternalStoreError wraps a
failed record store call together with the HTTP status the store returned.
"""
from __future__ import annotations


class ValidationError(ValueError):
    """User input does not satisfy the contract of the selected mode."""


class DuplicateNameError(ValidationError):
    """Another record already uses the requested display name."""

    def __init__(self, name: str):
        super().__init__(f"An image named '{name}' already exists")
        self.name = name


class ExternalStoreError(RuntimeError):
    """A record store (Kubernetes API) call failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status {self.status_code})"
        return self.message
