'''
Service credential checks.

Every API call carries ``Authorization: Bearer <API_TOKEN>``. The token is
compared in constant time and is only ever logged as a truncated SHA-256
hash. Resource secrets are checked by ``posts.PostStore`` with the same
``timing_safe_equals`` helper.
'''
import hashlib
import hmac
import logging
import re
from functools import wraps
from typing import Any, Callable, Optional

from flask import current_app, g, request

from errors import (
    InvalidCredentialError,
    MalformedCredentialError,
    MissingCredentialError,
    ServerConfigError,
)

logger = logging.getLogger(__name__)

_BEARER_PATTERN = re.compile(r'^Bearer\s+(.+)$')


def timing_safe_equals(provided:str, expected:str) -> bool:
    '''
    Compare two strings without leaking where they differ.

    Runs over the whole of ``expected`` even when the lengths differ, so the
    work done depends only on the expected value.
    '''
    return hmac.compare_digest(provided.encode('utf-8'), expected.encode('utf-8'))


def create_token_hash(token:str) -> str:
    '''Short fingerprint of a credential for logs and rate limit keys.'''
    return hashlib.sha256(token.encode('utf-8')).hexdigest()[:8]


def extract_bearer_token(header:Optional[str]) -> Optional[str]:
    if not header:
        return None
    match = _BEARER_PATTERN.match(header)
    return match.group(1) if match else None


def _request_context() -> dict:
    return {
        'ip': request.remote_addr,
        'user_agent': request.headers.get('User-Agent'),
        'endpoint': request.path,
        'method': request.method,
    }


def authenticate_request() -> str:
    '''
    Validate the service credential of the current request.

    Returns the token hash on success and records it on ``g.token_hash``.
    '''
    api_token : str = current_app.config.get('API_TOKEN') or ''
    if not api_token:
        logger.error('API_TOKEN environment variable not configured')
        raise ServerConfigError()

    header : Optional[str] = request.headers.get('Authorization')
    if not header:
        logger.warning('API request without Authorization header', extra=_request_context())
        raise MissingCredentialError()

    provided = extract_bearer_token(header)
    if provided is None:
        logger.warning('Invalid Authorization header format', extra=_request_context())
        raise MalformedCredentialError()

    token_hash : str = create_token_hash(provided)
    if not timing_safe_equals(provided, api_token):
        logger.warning('Invalid API token provided',
                       extra={**_request_context(), 'token_hash': token_hash, 'auth_result': 'failed'})
        raise InvalidCredentialError()

    logger.info('API authentication successful',
                extra={**_request_context(), 'token_hash': token_hash, 'auth_result': 'success'})
    g.token_hash = token_hash
    return token_hash


def require_api_token(view:Callable) -> Callable:
    @wraps(view)
    def wrapped(*args:Any, **kwargs:Any) -> Any:
        authenticate_request()
        return view(*args, **kwargs)
    return wrapped


def read_access(view:Callable) -> Callable:
    '''Gate a read endpoint behind the service token when READ_REQUIRES_TOKEN is set.'''
    @wraps(view)
    def wrapped(*args:Any, **kwargs:Any) -> Any:
        if current_app.config.get('READ_REQUIRES_TOKEN'):
            authenticate_request()
        return view(*args, **kwargs)
    return wrapped
