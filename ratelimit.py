'''
Per-identity request budgets.

Three independent fixed windows backed by the ``limits`` in-memory storage:

- public: read traffic, keyed by client IP
- service: authenticated API traffic, keyed by the credential hash (IP fallback)
- auth_failure: failed authentication attempts per IP; successes never count

The auth_failure gate is tested before a request runs and counted after it
fails, so failures already in flight when the fifth one lands still complete;
every later request from that IP is refused until the window resets.
'''
import logging
import math
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict

from flask import current_app, request
from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from auth import create_token_hash, extract_bearer_token
from errors import AuthenticationFailure, RateLimitError

logger = logging.getLogger(__name__)

PUBLIC : str = 'public'
SERVICE : str = 'service'
AUTH_FAILURE : str = 'auth_failure'
# Resolves to PUBLIC or SERVICE depending on READ_REQUIRES_TOKEN.
READ : str = 'read'


@dataclass(frozen=True)
class Tier:
    name : str
    item : RateLimitItem
    code : str
    message : str

    @property
    def window(self) -> int:
        return self.item.get_expiry()


class RateLimiter:
    '''Holds the tiers and their counters for one application.'''

    def __init__(self, public_limit:int=50, api_limit:int=200, window:int=900,
                 auth_failure_limit:int=5, auth_failure_window:int=3600):
        self.storage = MemoryStorage()
        self.strategy = FixedWindowRateLimiter(self.storage)
        self.tiers : Dict[str, Tier] = {
            PUBLIC: Tier(
                PUBLIC,
                RateLimitItemPerSecond(public_limit, window, namespace=PUBLIC),
                'RATE_LIMIT_EXCEEDED',
                'Too many requests from this IP address. Please try again later.',
            ),
            SERVICE: Tier(
                SERVICE,
                RateLimitItemPerSecond(api_limit, window, namespace=SERVICE),
                'API_RATE_LIMIT_EXCEEDED',
                'Too many API requests. Please try again later.',
            ),
            AUTH_FAILURE: Tier(
                AUTH_FAILURE,
                RateLimitItemPerSecond(auth_failure_limit, auth_failure_window, namespace=AUTH_FAILURE),
                'AUTH_FAILURE_RATE_LIMIT_EXCEEDED',
                'Too many authentication failures from this IP address. Access temporarily blocked.',
            ),
        }

    @classmethod
    def from_config(cls, config:Any) -> 'RateLimiter':
        return cls(
            public_limit=config['PUBLIC_RATE_LIMIT'],
            api_limit=config['API_RATE_LIMIT'],
            window=config['RATE_LIMIT_WINDOW'],
            auth_failure_limit=config['AUTH_FAILURE_LIMIT'],
            auth_failure_window=config['AUTH_FAILURE_WINDOW'],
        )

    def retry_after(self, tier:Tier, identity:str) -> int:
        stats = self.strategy.get_window_stats(tier.item, identity)
        return max(1, math.ceil(stats.reset_time - time.time()))

    def _reject(self, tier:Tier, identity:str, endpoint:str) -> RateLimitError:
        retry_after = self.retry_after(tier, identity)
        log = logger.error if tier.name == AUTH_FAILURE else logger.warning
        log('Rate limit exceeded', extra={
            'tier': tier.name,
            'identity': identity,
            'endpoint': endpoint,
            'limit': tier.item.amount,
            'window_seconds': tier.window,
            'retry_after': retry_after,
        })
        return RateLimitError(retry_after, tier.message, tier.code)

    def hit(self, tier_name:str, identity:str, endpoint:str) -> None:
        '''Count one request against ``tier_name``; raise once the budget is spent.'''
        tier = self.tiers[tier_name]
        if not self.strategy.hit(tier.item, identity):
            raise self._reject(tier, identity, endpoint)

    def check_auth_failures(self, ip:str, endpoint:str) -> None:
        '''Refuse requests from an IP whose failure budget is exhausted, without counting.'''
        tier = self.tiers[AUTH_FAILURE]
        if not self.strategy.test(tier.item, ip):
            raise self._reject(tier, ip, endpoint)

    def record_auth_failure(self, ip:str) -> None:
        self.strategy.hit(self.tiers[AUTH_FAILURE].item, ip)


def get_rate_limiter() -> RateLimiter:
    return current_app.extensions['rate_limiter']


def client_ip() -> str:
    return request.remote_addr or 'unknown'


def request_identity(tier_name:str) -> str:
    '''Token hash for the service tier when a bearer token is present, otherwise the IP.'''
    if tier_name == SERVICE:
        token = extract_bearer_token(request.headers.get('Authorization'))
        if token is not None:
            return f'token:{create_token_hash(token)}'
    return f'ip:{client_ip()}'


def rate_limited(tier_name:str) -> Callable:
    '''
    Apply the auth-failure gate and one request tier to a view.

    Authentication failures raised by the view (or by decorators below this
    one) are counted against the caller's IP before propagating.
    '''
    def decorator(view:Callable) -> Callable:
        @wraps(view)
        def wrapped(*args:Any, **kwargs:Any) -> Any:
            limiter = get_rate_limiter()
            ip = client_ip()
            limiter.check_auth_failures(ip, request.path)

            name = tier_name
            if name == READ:
                name = SERVICE if current_app.config.get('READ_REQUIRES_TOKEN') else PUBLIC
            limiter.hit(name, request_identity(name), request.path)

            try:
                return view(*args, **kwargs)
            except AuthenticationFailure:
                limiter.record_auth_failure(ip)
                raise
        return wrapped
    return decorator
