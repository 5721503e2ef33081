import pytest

from app import create_app
from posts import get_post_store

API_TOKEN = 'test-api-token-0123456789'


@pytest.fixture
def make_app():
    def factory(**overrides):
        config = {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite://',
            'API_TOKEN': API_TOKEN,
            'APP_ENV': 'test',
            'READ_REQUIRES_TOKEN': False,
        }
        config.update(overrides)
        return create_app(config)
    return factory


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {'Authorization': f'Bearer {API_TOKEN}'}


@pytest.fixture
def store(app):
    with app.app_context():
        yield get_post_store()


@pytest.fixture
def created(client, auth_headers):
    '''A post created through the API; returns its id and secret.'''
    response = client.post('/', json={'title': 'T', 'content': 'C'}, headers=auth_headers)
    assert response.status_code == 201
    return response.get_json()
