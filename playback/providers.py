"""Track providers: where queue contents come from.

A provider lists provider-shaped track dicts page by page; the normalizer
turns them into Tracks. ``HttpTrackProvider`` talks to the web app's REST
API (``GET /audio``); the local library provider lives in
``playback.library``.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from playback.exceptions import ProviderError
from playback.logging import get_logger

logger = get_logger(__name__)

ORDERS = ('newest', 'title', 'artist')
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20


@dataclass(frozen=True)
class TrackFilter:
    """Query for ``TrackProvider.list_tracks``."""

    search: Optional[str] = None
    genre: Optional[str] = None
    order: str = 'newest'
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    def __post_init__(self):
        # Mirrors the API: bad paging values fall back to the defaults
        if not isinstance(self.page, int) or self.page < 1:
            object.__setattr__(self, 'page', DEFAULT_PAGE)
        if not isinstance(self.limit, int) or self.limit < 1:
            object.__setattr__(self, 'limit', DEFAULT_LIMIT)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def with_page(self, page: int) -> 'TrackFilter':
        return replace(self, page=page)

    def to_params(self) -> Dict[str, Any]:
        """Query string parameters, leaving out unset ones."""
        params = {'order': self.order, 'page': self.page, 'limit': self.limit}
        if self.search:
            params['search'] = self.search
        if self.genre:
            params['genre'] = self.genre
        return params


@dataclass
class TrackPage:
    """One page of provider-shaped track dicts."""

    items: List[Dict[str, Any]] = field(default_factory=list)
    current_page: int = DEFAULT_PAGE
    total_pages: int = 0
    total_items: int = 0
    items_per_page: int = DEFAULT_LIMIT

    @property
    def has_more(self) -> bool:
        return self.current_page < self.total_pages


class TrackProvider:
    """Source of tracks for the queue."""

    def list_tracks(self, track_filter: Optional[TrackFilter] = None) -> TrackPage:
        """
        List tracks matching ``track_filter``.

        Raises:
            ProviderError: the source could not be read
        """
        raise NotImplementedError


class HttpTrackProvider(TrackProvider):
    """Reads tracks from the web app's REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session = session or requests.Session()
        if token:
            self._session.headers['Authorization'] = f'Bearer {token}'

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else '?'
            raise ProviderError(f"GET {url} failed with HTTP {status}") from e
        except requests.RequestException as e:
            raise ProviderError(f"GET {url} failed: {e}") from e
        except ValueError as e:
            raise ProviderError(f"GET {url} returned invalid JSON") from e

    def list_tracks(self, track_filter: Optional[TrackFilter] = None) -> TrackPage:
        track_filter = track_filter or TrackFilter()
        data = self._get('/audio', params=track_filter.to_params())
        if not isinstance(data, dict):
            raise ProviderError("Unexpected /audio response")

        items = data.get('audios') or []
        if not isinstance(items, list):
            raise ProviderError("Unexpected 'audios' value in /audio response")

        pagination = data.get('pagination') or {}
        page = TrackPage(
            items=items,
            current_page=int(pagination.get('currentPage', track_filter.page)),
            total_pages=int(pagination.get('totalPages', 1 if items else 0)),
            total_items=int(pagination.get('totalItems', len(items))),
            items_per_page=int(pagination.get('itemsPerPage', track_filter.limit)),
        )
        logger.debug(
            "Fetched page %d/%d (%d tracks)",
            page.current_page, page.total_pages, len(items),
        )
        return page

    def get_track(self, track_id: str) -> Dict[str, Any]:
        """Fetch a single provider-shaped track."""
        data = self._get(f'/audio/{quote(str(track_id), safe="")}')
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected response for track {track_id}")
        return data
