"""Tests for track providers."""

import os

import pytest
import requests
from unittest.mock import MagicMock, Mock, patch

from playback.exceptions import ProviderError
from playback.library import DEFAULT_ALBUM, DEFAULT_GENRE, LocalTrackProvider, read_track
from playback.normalizer import normalize_tracks
from playback.providers import HttpTrackProvider, TrackFilter, TrackPage


def _response(payload=None, status=200, json_error=None):
    response = Mock()
    response.status_code = status
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    if json_error:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


class TestTrackFilter:

    def test_defaults(self):
        track_filter = TrackFilter()
        assert track_filter.page == 1
        assert track_filter.limit == 20
        assert track_filter.skip == 0
        assert track_filter.to_params() == {'order': 'newest', 'page': 1, 'limit': 20}

    @pytest.mark.parametrize('page, limit', [(0, 0), (-2, -5), ('3', None)])
    def test_bad_paging_falls_back(self, page, limit):
        track_filter = TrackFilter(page=page, limit=limit)
        assert (track_filter.page, track_filter.limit) == (1, 20)

    def test_params_and_skip(self):
        track_filter = TrackFilter(search='love', genre='Pop', order='title', page=3, limit=10)
        assert track_filter.skip == 20
        assert track_filter.to_params() == {
            'order': 'title', 'page': 3, 'limit': 10, 'search': 'love', 'genre': 'Pop',
        }
        assert track_filter.with_page(4).page == 4
        assert track_filter.with_page(4).search == 'love'

    def test_has_more(self):
        assert TrackPage(current_page=1, total_pages=2).has_more
        assert not TrackPage(current_page=2, total_pages=2).has_more
        assert not TrackPage().has_more


class TestHttpTrackProvider:

    @pytest.fixture
    def session(self):
        session = MagicMock()
        session.headers = {}
        return session

    def test_list_tracks(self, session):
        session.get.return_value = _response({
            'audios': [{'_id': 'a1', 'title': 'One', 'url': 'https://cdn.example.com/1.mp3'}],
            'pagination': {'currentPage': 2, 'totalPages': 5, 'totalItems': 81, 'itemsPerPage': 20},
        })
        provider = HttpTrackProvider('https://api.example.com/api/', session=session, timeout=5)

        page = provider.list_tracks(TrackFilter(search='one', page=2))

        session.get.assert_called_once_with(
            'https://api.example.com/api/audio',
            params={'order': 'newest', 'page': 2, 'limit': 20, 'search': 'one'},
            timeout=5,
        )
        assert page.current_page == 2
        assert page.total_pages == 5
        assert page.total_items == 81
        assert page.has_more
        assert [t.id for t in normalize_tracks(page.items)] == ['a1']

    def test_missing_pagination(self, session):
        session.get.return_value = _response({'audios': []})
        page = HttpTrackProvider('https://api.example.com', session=session).list_tracks()
        assert page.items == []
        assert page.total_pages == 0
        assert not page.has_more

    def test_bearer_token(self, session):
        HttpTrackProvider('https://api.example.com', token='abc', session=session)
        assert session.headers['Authorization'] == 'Bearer abc'

    def test_http_error(self, session):
        session.get.return_value = _response(status=500)
        with pytest.raises(ProviderError, match='HTTP 500'):
            HttpTrackProvider('https://api.example.com', session=session).list_tracks()

    def test_connection_error(self, session):
        session.get.side_effect = requests.ConnectionError('refused')
        with pytest.raises(ProviderError):
            HttpTrackProvider('https://api.example.com', session=session).list_tracks()

    def test_invalid_json(self, session):
        session.get.return_value = _response(json_error=ValueError('bad json'))
        with pytest.raises(ProviderError, match='invalid JSON'):
            HttpTrackProvider('https://api.example.com', session=session).list_tracks()

    def test_unexpected_payload(self, session):
        session.get.return_value = _response({'audios': 'nope'})
        with pytest.raises(ProviderError):
            HttpTrackProvider('https://api.example.com', session=session).list_tracks()

    def test_get_track_quotes_id(self, session):
        session.get.return_value = _response({'_id': 'a/b'})
        provider = HttpTrackProvider('https://api.example.com', session=session)
        assert provider.get_track('a/b') == {'_id': 'a/b'}
        assert session.get.call_args[0][0] == 'https://api.example.com/audio/a%2Fb'


def _tagged(title=None, artist=None, album=None, genre=None, length=200.0):
    audio_file = MagicMock()
    tags = {}
    if title:
        tags['title'] = [title]
    if artist:
        tags['artist'] = [artist]
    if album:
        tags['album'] = [album]
    if genre:
        tags['genre'] = [genre]
    audio_file.tags = tags
    audio_file.info.length = length
    return audio_file


class TestLocalTrackProvider:

    @pytest.fixture
    def music_dir(self, temp_dir):
        music = temp_dir / 'music'
        (music / 'sub').mkdir(parents=True)
        for name, mtime in [('b.mp3', 100), ('a.flac', 300), ('sub/c.ogg', 200)]:
            path = music / name
            path.touch()
            os.utime(path, (mtime, mtime))
        (music / 'cover.jpg').touch()
        return music

    @pytest.fixture
    def tags(self):
        by_name = {
            'a.flac': _tagged('Alpha', 'Zed', 'First', 'Jazz'),
            'b.mp3': _tagged('Bravo', 'Amy', genre='Rock'),
            'c.ogg': None,
        }
        with patch('playback.library.MutagenFile') as mutagen_file:
            mutagen_file.side_effect = lambda path, easy: by_name[os.path.basename(path)]
            yield mutagen_file

    def test_read_track(self, music_dir, tags):
        item = read_track(music_dir / 'a.flac')
        path = (music_dir / 'a.flac').resolve()
        assert item['_id'] == str(path)
        assert item['url'] == path.as_uri()
        assert item['title'] == 'Alpha'
        assert item['artist_name'] == 'Zed'
        assert item['duration'] == 200.0
        assert item['modified'] == 300

    def test_untagged_file_defaults(self, music_dir, tags):
        item = read_track(music_dir / 'sub' / 'c.ogg')
        assert item['title'] == 'c'
        assert item['album_name'] == DEFAULT_ALBUM
        assert item['genre'] == DEFAULT_GENRE
        assert item['duration'] == 0.0

    def test_scan_skips_non_audio(self, music_dir, tags, temp_dir):
        provider = LocalTrackProvider([music_dir, temp_dir / 'missing'])
        assert provider.scan() == 3

    def test_newest_first(self, music_dir, tags):
        page = LocalTrackProvider([music_dir]).list_tracks()
        assert [item['title'] for item in page.items] == ['Alpha', 'c', 'Bravo']
        assert page.total_items == 3
        assert page.total_pages == 1

    def test_order_by_artist(self, music_dir, tags):
        page = LocalTrackProvider([music_dir]).list_tracks(TrackFilter(order='artist'))
        assert [item['artist_name'] for item in page.items] == ['', 'Amy', 'Zed']

    def test_search_is_case_insensitive_and_literal(self, music_dir, tags):
        provider = LocalTrackProvider([music_dir])
        assert [i['title'] for i in provider.list_tracks(TrackFilter(search='JAZZ')).items] == ['Alpha']
        assert provider.list_tracks(TrackFilter(search='.*')).items == []

    def test_genre_filter(self, music_dir, tags):
        page = LocalTrackProvider([music_dir]).list_tracks(TrackFilter(genre='rock'))
        assert [item['title'] for item in page.items] == ['Bravo']

    def test_paging(self, music_dir, tags):
        provider = LocalTrackProvider([music_dir])
        page = provider.list_tracks(TrackFilter(page=2, limit=2))
        assert [item['title'] for item in page.items] == ['Bravo']
        assert page.total_pages == 2
        assert not page.has_more

    def test_items_are_playable(self, music_dir, tags):
        tracks = normalize_tracks(LocalTrackProvider([music_dir]).tracks)
        assert len(tracks) == 3
        assert all(t.audio_url.startswith('file://') for t in tracks)
