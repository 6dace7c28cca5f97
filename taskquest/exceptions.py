"""
Custom exceptions for the TaskQuest application.
Raised by services before any mutation (not found, forbidden, invalid input)
or after a rolled-back commit (database). The HTTP layer maps them to status codes.
"""


class TaskQuestException(Exception):
    """Base exception for TaskQuest application"""
    pass


class NotFoundException(TaskQuestException):
    """Raised when a user, task or sweep run does not exist"""
    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} with ID {entity_id} not found")


class ForbiddenException(TaskQuestException):
    """Raised when the caller does not own the referenced task"""
    def __init__(self, entity: str, entity_id, user_id: int):
        self.entity = entity
        self.entity_id = entity_id
        self.user_id = user_id
        super().__init__(f"User {user_id} may not access {entity} {entity_id}")


class InvalidTransitionException(TaskQuestException):
    """Raised when a change would break a task invariant"""
    def __init__(self, message: str):
        super().__init__(message)


class ValidationException(TaskQuestException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")


class DatabaseException(TaskQuestException):
    """Raised when database operations fail"""
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Database {operation} failed: {details}")


class SweepInProgressException(TaskQuestException):
    """Raised when a daily reset sweep is already running"""
    def __init__(self):
        super().__init__("Daily reset sweep already in progress")
