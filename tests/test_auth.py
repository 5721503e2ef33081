import hashlib
import statistics
import time
from unittest import mock

import pytest

import auth
from tests.conftest import API_TOKEN


class TestTimingSafeEquals:
    def test_identical(self):
        assert auth.timing_safe_equals('secret-value', 'secret-value')

    @pytest.mark.parametrize('provided', ['Xecret-value', 'secreX-value', 'secret-valuX'])
    def test_single_byte_difference_at_any_position(self, provided):
        assert not auth.timing_safe_equals(provided, 'secret-value')

    def test_different_lengths(self):
        assert not auth.timing_safe_equals('secret', 'secret-value')
        assert not auth.timing_safe_equals('secret-value-longer', 'secret-value')
        assert not auth.timing_safe_equals('', 'secret-value')

    def test_non_ascii(self):
        assert auth.timing_safe_equals('clé', 'clé')
        assert not auth.timing_safe_equals('cle', 'clé')

    def test_time_does_not_depend_on_mismatch_position(self):
        expected = 'a' * 4096
        candidates = {
            'first': 'b' + expected[1:],
            'middle': expected[:2048] + 'b' + expected[2049:],
            'last': expected[:-1] + 'b',
        }
        samples = {position: [] for position in candidates}
        for _ in range(2000):
            for position, provided in candidates.items():
                start = time.perf_counter_ns()
                auth.timing_safe_equals(provided, expected)
                samples[position].append(time.perf_counter_ns() - start)

        medians = [statistics.median(values) for values in samples.values()]
        # An early-exit comparison scales with the mismatch position.
        assert max(medians) / max(min(medians), 1) < 3

    def test_uses_constant_time_primitive(self):
        with mock.patch('auth.hmac.compare_digest', return_value=True) as compare:
            assert auth.timing_safe_equals('a', 'b')
        compare.assert_called_once_with(b'a', b'b')


class TestTokenHash:
    def test_consistent(self):
        assert auth.create_token_hash('token') == auth.create_token_hash('token')

    def test_distinct(self):
        assert auth.create_token_hash('token-a') != auth.create_token_hash('token-b')

    def test_truncated_sha256_hex(self):
        expected = hashlib.sha256(b'token').hexdigest()[:8]
        assert auth.create_token_hash('token') == expected


class TestExtractBearerToken:
    def test_bearer(self):
        assert auth.extract_bearer_token('Bearer abc') == 'abc'
        assert auth.extract_bearer_token('Bearer   abc') == 'abc'

    @pytest.mark.parametrize('header', [None, '', 'abc', 'Basic abc', 'Bearer', 'Bearer '])
    def test_not_bearer(self, header):
        assert auth.extract_bearer_token(header) is None


class TestServiceCredential:
    def _create(self, client, headers=None):
        return client.post('/', json={'title': 'T', 'content': 'C'}, headers=headers or {})

    def test_missing_header(self, client):
        response = self._create(client)
        assert response.status_code == 401
        assert response.get_json() == {'error': {
            'message': 'Authorization header is required', 'code': 'MISSING_AUTHORIZATION'}}

    def test_malformed_header(self, client):
        response = self._create(client, {'Authorization': f'Token {API_TOKEN}'})
        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'INVALID_AUTHORIZATION_FORMAT'

    def test_wrong_token(self, client):
        response = self._create(client, {'Authorization': 'Bearer wrong-token'})
        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'INVALID_API_TOKEN'

    def test_wrong_token_is_not_echoed(self, client):
        response = self._create(client, {'Authorization': 'Bearer very-secret-guess'})
        assert b'very-secret-guess' not in response.data

    def test_correct_token(self, client, auth_headers):
        assert self._create(client, auth_headers).status_code == 201

    def test_missing_server_token(self, make_app):
        client = make_app(API_TOKEN='').test_client()
        response = self._create(client, {'Authorization': 'Bearer anything'})
        assert response.status_code == 500
        assert response.get_json()['error']['code'] == 'MISSING_API_TOKEN_CONFIG'

    @pytest.mark.parametrize('method', ['put', 'delete'])
    def test_mutations_require_token(self, client, created, method):
        response = getattr(client, method)(f"/{created['id']}", json={'secret': created['secret']})
        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'MISSING_AUTHORIZATION'

    def test_raw_token_never_logged(self, client, caplog):
        with caplog.at_level('INFO'):
            self._create(client, {'Authorization': 'Bearer leaked-candidate'})
            self._create(client, {'Authorization': f'Bearer {API_TOKEN}'})
        logged = ' '.join(f'{record.getMessage()} {record.__dict__}' for record in caplog.records)
        assert 'leaked-candidate' not in logged
        assert API_TOKEN not in logged
        assert auth.create_token_hash('leaked-candidate') in logged


class TestReadAccess:
    def test_public_read_by_default(self, client, created):
        assert client.get(f"/{created['id']}").status_code == 200

    def test_read_requires_token_when_configured(self, make_app, auth_headers):
        client = make_app(READ_REQUIRES_TOKEN=True).test_client()
        created = client.post('/', json={'title': 'T', 'content': 'C'}, headers=auth_headers).get_json()
        assert client.get(f"/{created['id']}").status_code == 401
        assert client.get(f"/{created['id']}", headers=auth_headers).status_code == 200
