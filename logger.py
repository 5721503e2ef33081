'''JSON logging setup and per-request access logs.'''
import logging
import sys
import time

from flask import Flask, Response, g, request
from pythonjsonlogger.json import JsonFormatter

logger = logging.getLogger('notepub.access')


def setup_logger(level:str='INFO') -> None:
    root = logging.getLogger()
    if not any(getattr(handler, '_notepub', False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s',
                                           rename_fields={'levelname': 'level', 'asctime': 'timestamp'}))
        handler._notepub = True
        root.addHandler(handler)
    root.setLevel(level.upper())


def init_request_logging(app:Flask) -> None:
    @app.before_request
    def _start_timer() -> None:
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_request(response:Response) -> Response:
        started = g.get('request_started')
        duration_ms = round((time.perf_counter() - started) * 1000, 2) if started else None
        logger.info('Request completed', extra={
            'method': request.method,
            'path': request.path,
            'status': response.status_code,
            'duration_ms': duration_ms,
            'ip': request.remote_addr,
            'user_agent': request.headers.get('User-Agent'),
        })
        return response
