from unittest.mock import MagicMock

import pytest
import requests

import bundle
from app import create_app


def make_character(id, name='Rick Sanchez', status='Alive', species='Human', episodes=2):
    return {
        'id': id,
        'name': name,
        'status': status,
        'species': species,
        'image': f'https://rickandmortyapi.com/api/character/avatar/{id}.jpeg',
        'location': {'name': 'Citadel of Ricks', 'url': ''},
        'episode': [f'https://rickandmortyapi.com/api/episode/{n}' for n in range(1, episodes + 1)],
    }


def make_response(payload=None, status_code=200, json_error=None):
    response = MagicMock()
    response.status_code = status_code
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f'{status_code} Error', response=response
        )
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def api_payload():
    return {
        'info': {'count': 3, 'pages': 1, 'next': None, 'prev': None},
        'results': [
            make_character(1),
            make_character(2, name='Morty Smith', episodes=5),
            make_character(3, name='Birdperson', status='Dead', species='Bird-Person', episodes=0),
        ],
    }


@pytest.fixture
def bundle_dir(tmp_path):
    out = tmp_path / 'build'
    bundle.build_bundle(bundle.SOURCE_DIR, out)
    return out


@pytest.fixture
def client(bundle_dir):
    app = create_app(bundle_dir=bundle_dir, characters_url='https://api.test/character', request_timeout=2)
    app.config['TESTING'] = True
    return app.test_client()
