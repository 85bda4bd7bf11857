# Rick and Morty API client
# One GET per page load, turned into a typed result the page can render
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import requests

logger = logging.getLogger(__name__)

CHARACTERS_URL = os.getenv('CHARACTERS_URL', 'https://rickandmortyapi.com/api/character')
REQUEST_TIMEOUT = float(os.getenv('REQUEST_TIMEOUT', '10'))


class MalformedCharacter(ValueError):
    """A character record is missing a required field or has the wrong type"""


class CharacterStatus(Enum):
    ALIVE = 'Alive'
    DEAD = 'Dead'
    UNKNOWN = 'unknown'

    @classmethod
    def parse(cls, value):
        """API casing varies; anything unrecognised counts as unknown"""
        if isinstance(value, str):
            for status in cls:
                if status.value.lower() == value.strip().lower():
                    return status
        return cls.UNKNOWN


@dataclass(frozen=True)
class Character:
    id: int
    name: str
    status: CharacterStatus
    species: str
    episode: Tuple[str, ...] = ()
    image: Optional[str] = None
    location: Optional[str] = None

    @property
    def episode_count(self):
        return len(self.episode)


@dataclass(frozen=True)
class CharacterLoad:
    """Result of one fetch: characters on success, a reason on failure"""
    characters: Tuple[Character, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self):
        return self.error is None

    @classmethod
    def success(cls, characters):
        return cls(characters=tuple(characters))

    @classmethod
    def failure(cls, reason):
        return cls(error=reason)


@dataclass(frozen=True)
class ViewState:
    """Everything the entry document needs, rebuilt on every page load"""
    load: CharacterLoad = field(default_factory=CharacterLoad)

    @property
    def characters(self):
        return self.load.characters

    @property
    def failed(self):
        return not self.load.ok

    @property
    def empty(self):
        return self.load.ok and not self.load.characters


def _require(payload, key, kind):
    value = payload.get(key)
    # bool is an int subclass, ids must not be True/False
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise MalformedCharacter(f'field {key!r} missing or not {kind.__name__}')
    return value


def parse_character(payload):
    """API record -> Character"""
    if not isinstance(payload, dict):
        raise MalformedCharacter('character record is not an object')

    episode = payload.get('episode', [])
    if not isinstance(episode, list) or not all(isinstance(e, str) for e in episode):
        raise MalformedCharacter("field 'episode' is not a list of strings")

    location = payload.get('location')
    location_name = location.get('name') if isinstance(location, dict) else None

    return Character(
        id=_require(payload, 'id', int),
        name=_require(payload, 'name', str),
        status=CharacterStatus.parse(payload.get('status')),
        species=_require(payload, 'species', str),
        episode=tuple(episode),
        image=payload.get('image') or None,
        location=location_name or None,
    )


def fetch_characters(url=None, timeout=None, session=None):
    """Fetch the character list once.

    Network errors, non-2xx answers and malformed bodies all come back as
    a failed CharacterLoad instead of an exception.
    """
    url = url or CHARACTERS_URL
    timeout = timeout if timeout is not None else REQUEST_TIMEOUT
    http = session or requests

    try:
        response = http.get(url, headers={'Accept': 'application/json'}, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else 'unknown'
        logger.warning('Character API returned HTTP %s: %s', status, url)
        return CharacterLoad.failure(f'API responded with HTTP {status}')
    except requests.exceptions.RequestException as e:
        logger.warning('Character API request failed: %s', e)
        return CharacterLoad.failure(f'network error: {e.__class__.__name__}')

    try:
        data = response.json()
    except ValueError:
        logger.warning('Character API body is not JSON')
        return CharacterLoad.failure('malformed response')

    results = data.get('results') if isinstance(data, dict) else None
    if not isinstance(results, list):
        logger.warning('Character API body has no results list')
        return CharacterLoad.failure('malformed response')

    try:
        characters = [parse_character(item) for item in results]
    except MalformedCharacter as e:
        logger.warning('Character API record rejected: %s', e)
        return CharacterLoad.failure('malformed response')

    logger.info('Loaded %d characters', len(characters))
    return CharacterLoad.success(characters)
