"""
Platform-wide exception hierarchy.

Administrative service calls (membership assignment, role changes) raise
these types; blueprints map them to HTTP responses once.

Routine access-control outcomes (no access, inactive membership, suspended
tenant, stale credential) are NOT exceptions. Switch and validate return
structured results for them; see ``village_access.services.context_models``.
Store connectivity failures are not wrapped either: SQLAlchemy errors reach
the caller unchanged.

Usage:
    from village_access.core.exceptions import NotFoundError, ConflictError

    raise NotFoundError(resource="Tenant", resource_id=42)
    raise ConflictError("Membership", "user_id,tenant_id", "7,42")
"""


class NotFoundError(Exception):
    """Raised when a referenced tenant, role, user or membership does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Tenant", "Role").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an insert would violate a uniqueness invariant.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field tuple) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class CredentialRefreshError(Exception):
    """Raised when a tenant switch succeeded but the credential was not re-issued.

    The live store already reflects the new tenant; the caller's credential
    still carries the old claims. Callers must not treat the switch as active.

    Args:
        switch_result: The successful SwitchResult that preceded the failure.
        cause: The issuer error, if any.
    """

    def __init__(self, switch_result, cause: Exception | None = None) -> None:
        self.switch_result = switch_result
        self.cause = cause
        msg = f"Tenant switch to {switch_result.tenant_id} succeeded but credential refresh failed"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)
