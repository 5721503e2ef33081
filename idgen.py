import logging
import re
import secrets
import uuid
from typing import Callable

from errors import IdentifierExhaustedError

logger = logging.getLogger(__name__)

# No 0/O, 1/I/l.
ALPHABET : str = 'abcdefghijkmnpqrstuvwxyzABCDEFGHJKMNPQRSTUVWXYZ23456789'
ID_LENGTH : int = 8
DEFAULT_MAX_ATTEMPTS : int = 10

_SECRET_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$',
    re.IGNORECASE,
)


def new_public_id(length:int=ID_LENGTH) -> str:
    return ''.join(secrets.choice(ALPHABET) for _ in range(length))


def new_unique_id(exists_check:Callable[[str], bool], max_attempts:int=DEFAULT_MAX_ATTEMPTS) -> str:
    '''
    Draw public ids until ``exists_check`` reports one as unused.

    Raises ``IdentifierExhaustedError`` after ``max_attempts`` collisions.
    Errors raised by ``exists_check`` propagate unchanged.
    '''
    for attempt in range(1, max_attempts + 1):
        candidate : str = new_public_id()
        if not exists_check(candidate):
            logger.debug('Generated unique ID', extra={'short_id': candidate, 'attempts': attempt})
            return candidate
        logger.warning('ID collision detected, retrying', extra={'short_id': candidate, 'attempt': attempt})

    logger.error('Unique ID generation failed', extra={'max_attempts': max_attempts})
    raise IdentifierExhaustedError(max_attempts)


def new_secret() -> str:
    return str(uuid.uuid4())


def is_valid_id_format(value:object) -> bool:
    if not isinstance(value, str) or len(value) != ID_LENGTH:
        return False
    return all(char in ALPHABET for char in value)


def is_valid_secret_format(value:object) -> bool:
    return isinstance(value, str) and _SECRET_PATTERN.match(value) is not None
