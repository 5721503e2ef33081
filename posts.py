'''
Post lifecycle: create, read, update and delete.

``PostStore`` owns the state transitions around the ``posts`` table and keeps
the read cache consistent with them. It is built once per application in
``create_app`` and receives its database session and cache by injection.
'''
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import idgen
from auth import timing_safe_equals
from cache import HTML, JSON, PostCache
from errors import NotFoundError, ResourceAuthError, StorageError
from models import Post, utcnow
from render import render_post_page

logger = logging.getLogger(__name__)

# Compared against when the id is unknown, so both failure paths do the same work.
_PLACEHOLDER_SECRET : str = idgen.new_secret()


@dataclass(frozen=True)
class CreatedPost:
    short_id : str
    secret : str


class PostStore:
    def __init__(self, session:Any, cache:PostCache, max_id_attempts:int=idgen.DEFAULT_MAX_ATTEMPTS):
        self.session = session
        self.cache = cache
        self.max_id_attempts = max_id_attempts

    def _query(self):
        return self.session.query(Post)

    def _storage_error(self, action:str, exc:Exception, **context:Any) -> StorageError:
        self.session.rollback()
        logger.error(f'Failed to {action}', exc_info=exc, extra=context)
        return StorageError(f'Failed to {action}: {exc}')

    def exists(self, short_id:str) -> bool:
        try:
            return self._query().filter_by(short_id=short_id).first() is not None
        except SQLAlchemyError as exc:
            raise self._storage_error('check if post exists', exc, short_id=short_id) from exc

    def find(self, short_id:str) -> Optional[Post]:
        try:
            return self._query().filter_by(short_id=short_id).first()
        except SQLAlchemyError as exc:
            raise self._storage_error('find post', exc, short_id=short_id) from exc

    def _insert(self, short_id:str, title:str, content:str) -> Optional[str]:
        '''Insert a post under ``short_id``; the new secret, or None if the id was taken meanwhile.'''
        secret : str = idgen.new_secret()
        now = utcnow()
        new_post : Post = Post(short_id=short_id, secret=secret, title=title, content=content,
                               created_at=now, updated_at=now)
        try:
            self.session.add(new_post)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.warning('ID collision at insert', extra={'short_id': short_id})
            return None
        except SQLAlchemyError as exc:
            raise self._storage_error('create post', exc, short_id=short_id) from exc
        return secret

    def create(self, title:str, content:str) -> CreatedPost:
        '''
        Insert a post under a fresh unique id and return the id and secret.

        A candidate counts as taken when it already exists or when the insert
        hits the unique constraint, so both kinds of collision draw on one
        attempt budget.
        '''
        secrets_by_id : Dict[str, str] = {}

        def is_taken(candidate:str) -> bool:
            if self.exists(candidate):
                return True
            secret = self._insert(candidate, title, content)
            if secret is None:
                return True
            secrets_by_id[candidate] = secret
            return False

        short_id : str = idgen.new_unique_id(is_taken, self.max_id_attempts)
        logger.info('Post created', extra={'short_id': short_id, 'title': title[:50], 'content_length': len(content)})
        return CreatedPost(short_id=short_id, secret=secrets_by_id[short_id])

    def get(self, short_id:str) -> Post:
        post = self.find(short_id)
        if post is None:
            logger.debug('Post not found', extra={'short_id': short_id})
            raise NotFoundError()
        return post

    def view(self, short_id:str, kind:str) -> Any:
        '''Rendered page (``HTML``) or raw data (``JSON``), through the cache.'''
        def compute() -> Any:
            post = self.get(short_id)
            if kind == HTML:
                return render_post_page(post)
            return post.to_public_dict()

        return self.cache.get_or_compute(short_id, kind, compute)

    def authorize(self, short_id:str, secret:str) -> None:
        '''Check ``secret`` against the stored one; unknown ids fail identically.'''
        post = self.find(short_id)
        stored : str = post.secret if post is not None else _PLACEHOLDER_SECRET
        matches : bool = timing_safe_equals(secret, stored)
        if post is None:
            logger.info('Mutation rejected: post not found', extra={'short_id': short_id})
            raise ResourceAuthError()
        if not matches:
            logger.warning('Mutation rejected: secret mismatch', extra={'short_id': short_id})
            raise ResourceAuthError()

    def update(self, short_id:str, secret:str, title:str, content:str) -> None:
        self.authorize(short_id, secret)
        try:
            changed : int = self._query().filter_by(short_id=short_id, secret=secret).update(
                {'title': title, 'content': content, 'updated_at': utcnow()},
                synchronize_session=False,
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            raise self._storage_error('update post', exc, short_id=short_id) from exc

        if changed == 0:
            # Deleted between the secret check and the update.
            logger.info('Mutation rejected: post vanished before update', extra={'short_id': short_id})
            raise ResourceAuthError()

        self.cache.invalidate(short_id)
        logger.info('Post updated', extra={'short_id': short_id, 'title': title[:50], 'content_length': len(content)})

    def delete(self, short_id:str, secret:str) -> None:
        self.authorize(short_id, secret)
        try:
            changed : int = self._query().filter_by(short_id=short_id, secret=secret).delete(
                synchronize_session=False,
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            raise self._storage_error('delete post', exc, short_id=short_id) from exc

        if changed == 0:
            logger.info('Mutation rejected: post vanished before delete', extra={'short_id': short_id})
            raise ResourceAuthError()

        self.cache.invalidate(short_id)
        logger.info('Post deleted', extra={'short_id': short_id})


def get_post_store() -> PostStore:
    return current_app.extensions['post_store']
