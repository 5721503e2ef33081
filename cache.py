'''
Read-through cache for post representations.

Entries live in the Flask-Caching backend configured for the app (an
in-process ``SimpleCache`` by default) under ``post:<short_id>:<kind>``.
Mutations invalidate every kind for the id before they are acknowledged.

Each id also carries a generation marker under ``post:<short_id>:gen``. A
population only stores its value if the marker it read is still current, so a
write landing mid-compute cannot leave a stale entry behind. Markers expire
like any other entry, so no per-id state outlives its timeout.
'''
import itertools
import logging
import threading
from typing import Any, Callable, Iterator, Tuple

from flask_caching import Cache

logger = logging.getLogger(__name__)

cache = Cache()

HTML : str = 'html'
JSON : str = 'json'
KINDS : Tuple[str, ...] = (HTML, JSON)

# Must outlast the slowest compute.
GENERATION_TIMEOUT : int = 60


def cache_key(short_id:str, kind:str) -> str:
    return f'post:{short_id}:{kind}'


def generation_key(short_id:str) -> str:
    return f'post:{short_id}:gen'


class PostCache:
    def __init__(self, backend:Cache=cache, generation_timeout:int=GENERATION_TIMEOUT):
        self.backend = backend
        self.generation_timeout = generation_timeout
        self._lock = threading.Lock()
        # Markers are never reused, so an expired or evicted marker reads as stale.
        self._markers : Iterator[int] = itertools.count(1)

    def _new_generation(self, short_id:str) -> int:
        generation = next(self._markers)
        self.backend.set(generation_key(short_id), generation, timeout=self.generation_timeout)
        return generation

    def get_or_compute(self, short_id:str, kind:str, compute:Callable[[], Any]) -> Any:
        key = cache_key(short_id, kind)
        with self._lock:
            value = self.backend.get(key)
            generation = self.backend.get(generation_key(short_id))
            if value is None and generation is None:
                generation = self._new_generation(short_id)
        if value is not None:
            logger.debug('Cache hit', extra={'key': key})
            return value

        logger.debug('Cache miss', extra={'key': key})
        value = compute()
        with self._lock:
            if self.backend.get(generation_key(short_id)) == generation:
                self.backend.set(key, value)
            else:
                logger.debug('Discarding stale cache population', extra={'key': key})
        return value

    def invalidate(self, short_id:str) -> None:
        with self._lock:
            self._new_generation(short_id)
            self.backend.delete_many(*(cache_key(short_id, kind) for kind in KINDS))
        logger.debug('Cache invalidated', extra={'short_id': short_id})
