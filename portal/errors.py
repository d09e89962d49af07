"""
Portal Errors
Typed failures shared by services, blueprints and socket handlers
"""


class PortalError(Exception):
    """Base class for all portal failures"""
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self):
        return {'success': False, 'error': self.message}


class ValidationError(PortalError):
    """Invalid input"""
    status_code = 400


class NotFoundError(PortalError):
    """Record not found"""
    status_code = 404


class StorageError(PortalError):
    """Database operation failed"""


class UniqueViolation(StorageError):
    """Uniqueness constraint violated"""
    status_code = 409


class SubmissionError(PortalError):
    """Submission could not be recorded"""
