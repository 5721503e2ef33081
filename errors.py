'''
Error types raised by the service.

Every error carries an HTTP status and a machine-readable code; the handler
in ``app.py`` renders them as ``{"error": {"message": ..., "code": ...}}``.
'''
from typing import Any, Dict, Optional


class NotepubError(Exception):
    '''Base class for errors that map onto an HTTP response.'''

    status_code : int = 500
    code : str = 'INTERNAL_ERROR'
    message : str = 'Internal Server Error'

    def __init__(self, message:Optional[str]=None, code:Optional[str]=None):
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {'error': {'message': self.message, 'code': self.code}}


class ValidationError(NotepubError):
    status_code = 400
    code = 'VALIDATION_ERROR'
    message = 'Validation failed'


class NotFoundError(NotepubError):
    status_code = 404
    code = 'POST_NOT_FOUND'
    message = 'Post not found'


class ServerConfigError(NotepubError):
    status_code = 500
    code = 'MISSING_API_TOKEN_CONFIG'
    message = 'Server configuration error'


class AuthenticationFailure(NotepubError):
    '''A failed credential check; counted by the auth-failure rate limit tier.'''
    status_code = 401
    code = 'UNAUTHORIZED'
    message = 'Unauthorized'


class MissingCredentialError(AuthenticationFailure):
    code = 'MISSING_AUTHORIZATION'
    message = 'Authorization header is required'


class MalformedCredentialError(AuthenticationFailure):
    code = 'INVALID_AUTHORIZATION_FORMAT'
    message = 'Invalid Authorization header format. Expected: Bearer <token>'


class InvalidCredentialError(AuthenticationFailure):
    code = 'INVALID_API_TOKEN'
    message = 'Invalid API token'


class ResourceAuthError(AuthenticationFailure):
    # Same body for "unknown id" and "wrong secret".
    code = 'INVALID_POST_CREDENTIALS'
    message = 'Post not found or invalid secret'


class RateLimitError(NotepubError):
    status_code = 429
    code = 'RATE_LIMIT_EXCEEDED'
    message = 'Too many requests. Please try again later.'

    def __init__(self, retry_after:int, message:Optional[str]=None, code:Optional[str]=None):
        self.retry_after = retry_after
        super().__init__(message, code)

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body['error']['retry_after'] = self.retry_after
        return body


class IdentifierExhaustedError(NotepubError):
    code = 'IDENTIFIER_EXHAUSTED'

    def __init__(self, attempts:int):
        self.attempts = attempts
        super().__init__(f'Failed to generate unique ID after {attempts} attempts')


class StorageError(NotepubError):
    code = 'STORAGE_ERROR'
    message = 'Storage operation failed'
