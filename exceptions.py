"""
Custom Exception Hierarchy - Domain-specific error types

Provides typed exceptions for the failure modes of survey scoring,
the transactional store and group provisioning.
All custom exceptions inherit from CommonGroundError for easy catching.

- Exceptions are data: include context for debugging
- Catch specifically: handlers map each type to one HTTP status
"""

from typing import Optional, Dict, Any


class CommonGroundError(Exception):
    """Base exception for all Common Ground errors

    Subclasses representing transient failures set _retryable = True.
    """

    _retryable: bool = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Check if this error represents a transient failure that should be retried.

        Returns:
            True for transient failures (connection loss, write conflicts)
            False for permanent failures (validation, missing data)
        """
        return self._retryable

    def __str__(self):
        base_msg = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


# ========== Database Errors ==========


class DatabaseError(CommonGroundError):
    """Store operation failures

    Examples:
    - Connection failures
    - Transaction rollbacks
    - Precondition violations at commit
    """
    pass


class DatabaseConnectionError(DatabaseError):
    """Failed to establish or maintain store connection"""
    _retryable = True


class DataIntegrityError(DatabaseError):
    """Integrity violation at commit

    Examples:
    - Insert of a key that already exists
    - Write against a transaction that was already closed
    """

    def __init__(self, message: str, key: Optional[str] = None, constraint: Optional[str] = None):
        self.key = key
        self.constraint = constraint
        context = {}
        if key:
            context['key'] = key
        if constraint:
            context['constraint'] = constraint
        super().__init__(message, context)


class EntityNotFoundError(DatabaseError):
    """A staged write referenced a parent entity that does not exist"""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message, {'key': key} if key else None)


class TransactionConflictError(DatabaseError):
    """Concurrent modification of an entity read inside the transaction

    Always retryable: re-running the transaction re-reads current state.
    """

    _retryable = True

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message, {'key': key} if key else None)


# ========== Survey Errors ==========


class SurveyNotFoundError(CommonGroundError):
    """Survey version does not resolve to a known definition"""

    def __init__(self, version: str):
        self.version = version
        super().__init__(f"Survey version {version} not found.", {'version': version})


class SurveyDefinitionError(CommonGroundError):
    """Survey document failed to parse at load time

    Examples:
    - Question referencing an undeclared category
    - Option score outside the allowed range
    - Duplicate question ids
    """

    def __init__(self, message: str, version: Optional[str] = None, source: Optional[str] = None):
        self.version = version
        self.source = source
        context = {}
        if version:
            context['version'] = version
        if source:
            context['source'] = source
        super().__init__(message, context)


# ========== Validation Errors ==========


class ValidationError(CommonGroundError):
    """Request data validation failures

    Examples:
    - Empty answer batch
    - Missing required field
    """

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None):
        self.field = field
        self.value = value

        context = {}
        if field:
            context['field'] = field
        if value is not None:
            context['value'] = str(value)

        super().__init__(message, context)


# ========== Group Errors ==========


class GroupError(CommonGroundError):
    """Group provisioning and membership failures"""

    def __init__(self, message: str, group_id: Optional[str] = None, user_id: Optional[str] = None):
        self.group_id = group_id
        self.user_id = user_id

        context = {}
        if group_id:
            context['group_id'] = group_id
        if user_id:
            context['user_id'] = user_id

        super().__init__(message, context)


class GroupNotFoundError(GroupError):
    """No group exists with the given id"""
    pass


class InvalidGroupCodeError(GroupError):
    """Presented join code does not match the group's code"""
    pass


class AlreadyMemberError(GroupError):
    """User already holds a membership in the group"""
    pass


class GroupProvisioningError(GroupError):
    """Group creation failed

    When group_id is set, the Group record was committed but the owner
    membership was not: the group exists with zero members and is left
    for the orphaned-group sweep.
    """

    def __init__(
        self,
        message: str,
        group_id: Optional[str] = None,
        user_id: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.original_error = original_error
        super().__init__(message, group_id=group_id, user_id=user_id)
        if original_error:
            self.context['original_error'] = str(original_error)

    @property
    def orphaned(self) -> bool:
        return self.group_id is not None
