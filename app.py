import logging
import datetime
from typing import Any, Mapping, Optional, Tuple, Union

from flask import Blueprint, Flask, Response, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from auth import read_access, require_api_token
from cache import HTML, JSON, PostCache, cache
from errors import NotepubError, RateLimitError, ValidationError
from idgen import is_valid_id_format
from logger import init_request_logging, setup_logger
from models import db
from posts import PostStore, get_post_store
from ratelimit import READ, SERVICE, RateLimiter, rate_limited
from schemas import CreatePostRequest, DeletePostRequest, UpdatePostRequest, parse_request

logger = logging.getLogger(__name__)

blueprint = Blueprint('posts', __name__)

SECURITY_HEADERS : Mapping[str, str] = {
    'Content-Security-Policy': "default-src 'self'; style-src 'self' 'unsafe-inline'; img-src 'self' data: https:",
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'no-referrer',
}


def _checked_id(short_id:str) -> str:
    if not is_valid_id_format(short_id):
        raise ValidationError('Invalid post ID format')
    return short_id


def _wants_json() -> bool:
    return request.accept_mimetypes.best_match(['text/html', 'application/json']) == 'application/json'


@blueprint.route('/', methods=['POST'])
@rate_limited(SERVICE)
@require_api_token
def create_post() -> Tuple[Response, int]:
    body : CreatePostRequest = parse_request(CreatePostRequest, request.get_json(silent=True))
    created = get_post_store().create(body.title, body.content)
    return jsonify(id=created.short_id, secret=created.secret), 201


@blueprint.route('/<short_id>', methods=['GET'])
@rate_limited(READ)
@read_access
def post(short_id:str) -> Union[Response, Tuple[str, int, dict]]:
    store : PostStore = get_post_store()
    _checked_id(short_id)
    if _wants_json():
        return jsonify(store.view(short_id, JSON))
    page : str = store.view(short_id, HTML)
    logger.info('Post viewed', extra={'short_id': short_id})
    return page, 200, {'Content-Type': 'text/html; charset=utf-8'}


@blueprint.route('/<short_id>', methods=['PUT'])
@rate_limited(SERVICE)
@require_api_token
def modify_post(short_id:str) -> Tuple[str, int]:
    _checked_id(short_id)
    body : UpdatePostRequest = parse_request(UpdatePostRequest, request.get_json(silent=True))
    get_post_store().update(short_id, body.secret, body.title, body.content)
    return '', 204


@blueprint.route('/<short_id>', methods=['DELETE'])
@rate_limited(SERVICE)
@require_api_token
def delete_post(short_id:str) -> Tuple[str, int]:
    _checked_id(short_id)
    body : DeletePostRequest = parse_request(DeletePostRequest, request.get_json(silent=True))
    get_post_store().delete(short_id, body.secret)
    return '', 204


def health() -> Response:
    return jsonify(
        status='healthy',
        timestamp=datetime.datetime.now(datetime.timezone.utc).isoformat(),
        version=current_app.config['VERSION'],
    )


def _error_response(body:dict, status:int, headers:Optional[dict]=None) -> Tuple[Response, int, dict]:
    return jsonify(body), status, headers or {}


def handle_notepub_error(error:NotepubError) -> Tuple[Response, int, dict]:
    if error.status_code >= 500:
        logger.error('Request error', exc_info=error, extra={
            'code': error.code, 'method': request.method, 'path': request.path,
        })
        if current_app.config['APP_ENV'] == 'production':
            return _error_response({'error': {'message': 'Internal Server Error', 'code': error.code}},
                                   error.status_code)
    headers : dict = {}
    if isinstance(error, RateLimitError):
        headers['Retry-After'] = str(error.retry_after)
    return _error_response(error.to_dict(), error.status_code, headers)


def handle_http_exception(error:HTTPException) -> Tuple[Response, int, dict]:
    code : str = (error.name or 'error').upper().replace(' ', '_')
    return _error_response({'error': {'message': error.description, 'code': code}}, error.code or 500)


def handle_unexpected_error(error:Exception) -> Tuple[Response, int, dict]:
    logger.error('Unhandled error', exc_info=error, extra={'method': request.method, 'path': request.path})
    message : str = 'Internal Server Error'
    if current_app.config['APP_ENV'] != 'production':
        message = str(error) or message
    return _error_response({'error': {'message': message, 'code': 'INTERNAL_ERROR'}}, 500)


def add_security_headers(response:Response) -> Response:
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


def create_app(test_config:Optional[Mapping[str, Any]]=None) -> Flask:
    '''Build the application, its database handle, cache, limiter and post store.'''
    app : Flask = Flask(__name__)
    app.config.from_object('config')
    if test_config:
        app.config.update(test_config)

    setup_logger(app.config['LOG_LEVEL'])
    if app.config['TRUST_PROXY']:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

    db.init_app(app)
    cache.init_app(app)
    CORS(app, origins=app.config['CORS_ORIGINS'], supports_credentials=True)

    app.extensions['rate_limiter'] = RateLimiter.from_config(app.config)
    app.extensions['post_store'] = PostStore(db.session, PostCache(cache), app.config['ID_MAX_ATTEMPTS'])

    app.add_url_rule('/health', 'health', health, methods=['GET'])
    app.register_blueprint(blueprint)
    app.register_error_handler(NotepubError, handle_notepub_error)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_unexpected_error)
    app.after_request(add_security_headers)
    init_request_logging(app)

    with app.app_context():
        db.create_all()

    if not app.config['API_TOKEN']:
        logger.warning('API_TOKEN is not set; API calls will fail until it is configured')
    return app


if __name__ == '__main__':
    app : Flask = create_app()
    port : int = app.config['PORT']
    logger.info(f'Notepub server running on port {port}',
                extra={'port': port, 'env': app.config['APP_ENV']})
    app.run(host='0.0.0.0', port=port, threaded=True)
