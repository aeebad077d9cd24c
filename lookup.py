# lookup.py
from __future__ import annotations
import logging
import threading
import time
from typing import Any, Callable, Iterable

import requests

import config
from errors import ProviderError
from models.book import BookMetadata

logger = logging.getLogger(__name__)

# Variables
JUHE_ISBN_API = "http://apis.juhe.cn/isbn/query"
GOOGLE_BOOKS_API = "https://www.googleapis.com/books/v1/volumes"
OPENLIB_BOOKS_API = "https://openlibrary.org/api/books"

MAX_SUMMARY_CHARS = 4000


# ========== Helpers ==========

def _first(d: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        v = d.get(k)
        if v:
            return v
    return None


def _clip(text: Any) -> str | None:
    if not isinstance(text, str) or not text:
        return None
    if len(text) > MAX_SUMMARY_CHARS:
        return text[:MAX_SUMMARY_CHARS] + "..."
    return text


def _https(url: str | None) -> str | None:
    if url and url.startswith("http:"):
        return "https:" + url[len("http:"):]
    return url


# ========== Providers ==========

class Provider:
    """
    One metadata source. `lookup` returns the raw payload, None when the
    source has no answer, or raises ProviderError on transport/parse failure.
    """

    name = "provider"

    def __init__(self, session: requests.Session | None = None, timeout_s: float = config.HTTP_TIMEOUT_SECONDS):
        self.session = session or requests.Session()
        self.timeout_s = timeout_s

    def lookup(self, isbn: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def _get_json(self, url: str, params: dict[str, str]) -> Any | None:
        try:
            r = self.session.get(url, params=params, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise ProviderError(self.name, e) from e

        if not r.ok:
            logger.info("%s request failed: HTTP %s", self.name, r.status_code)
            return None

        try:
            return r.json()
        except ValueError as e:
            raise ProviderError(self.name, e) from e


class JuheProvider(Provider):
    name = "juhe"

    def __init__(self, api_key: str | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.api_key = config.JUHE_BOOK_API_KEY if api_key is None else api_key

    def lookup(self, isbn: str) -> dict[str, Any] | None:
        if not self.api_key:
            logger.warning("Juhe API key not configured, skipping provider")
            return None

        data = self._get_json(JUHE_ISBN_API, {"isbn": isbn, "key": self.api_key})
        if not isinstance(data, dict):
            return None
        # { error_code: 0, result: {...} }
        if data.get("error_code") != 0 or not data.get("result"):
            logger.info("Juhe has no result for %s: %s", isbn, data.get("reason") or "unknown")
            return None
        return data


class GoogleBooksProvider(Provider):
    name = "google_books"

    def lookup(self, isbn: str) -> dict[str, Any] | None:
        data = self._get_json(GOOGLE_BOOKS_API, {"q": f"isbn:{isbn}"})
        if not isinstance(data, dict) or not data.get("items"):
            logger.info("Google Books has no result for %s", isbn)
            return None
        return data


class OpenLibraryProvider(Provider):
    name = "openlibrary"

    def lookup(self, isbn: str) -> dict[str, Any] | None:
        params = {"bibkeys": f"ISBN:{isbn}", "format": "json", "jscmd": "data"}
        data = self._get_json(OPENLIB_BOOKS_API, params)
        if not isinstance(data, dict) or not data.get(f"ISBN:{isbn}"):
            logger.info("Open Library has no result for %s", isbn)
            return None
        return data


# ========== Field mapping ==========

def map_juhe(isbn: str, payload: dict[str, Any]) -> BookMetadata | None:
    result = payload.get("result") or {}
    # the actual record sits under "data" for most keys
    b = result.get("data") or result
    if not isinstance(b, dict):
        return None

    title = _first(b, "title", "name")
    if not title:
        return None

    return BookMetadata(
        title=title,
        author=b.get("author") or None,
        publisher=_first(b, "publisher", "publishing"),
        cover_url=_first(b, "img", "pic", "image"),
        summary=_clip(_first(b, "gist", "summary", "catalog")),
        provider=JuheProvider.name,
    )


def map_google_books(isbn: str, payload: dict[str, Any]) -> BookMetadata | None:
    items = payload.get("items") or []
    if not items:
        return None
    v = items[0].get("volumeInfo") or {}

    title = v.get("title")
    if not title:
        return None

    authors = v.get("authors") or []
    if isinstance(authors, str):
        authors = [authors]
    authors = [a for a in authors if isinstance(a, str) and a]
    links = v.get("imageLinks") or {}
    return BookMetadata(
        title=title,
        author=", ".join(authors) or None,
        publisher=v.get("publisher") or None,
        cover_url=_https(_first(links, "thumbnail", "smallThumbnail", "small", "medium", "large")),
        summary=_clip(v.get("description")),
        provider=GoogleBooksProvider.name,
    )


def map_openlibrary(isbn: str, payload: dict[str, Any]) -> BookMetadata | None:
    b = payload.get(f"ISBN:{isbn}") or {}

    title = b.get("title")
    if not title:
        return None

    # keep canonical cover fallback
    cover = None
    if isinstance(b.get("cover"), dict):
        cover = _first(b["cover"], "large", "medium", "small")
    cover = cover or f"https://covers.openlibrary.org/b/ISBN/{isbn}-L.jpg"

    authors = [a.get("name") for a in b.get("authors", []) if a.get("name")]
    publishers = [p.get("name") for p in b.get("publishers", []) if p.get("name")]
    return BookMetadata(
        title=title,
        author=", ".join(authors) or None,
        publisher=publishers[0] if publishers else None,
        cover_url=cover,
        summary=_clip(b.get("notes")),
        provider=OpenLibraryProvider.name,
    )


MAPPERS: dict[str, Callable[[str, dict[str, Any]], BookMetadata | None]] = {
    JuheProvider.name: map_juhe,
    GoogleBooksProvider.name: map_google_books,
    OpenLibraryProvider.name: map_openlibrary,
}

PROVIDER_CLASSES: dict[str, type[Provider]] = {
    JuheProvider.name: JuheProvider,
    GoogleBooksProvider.name: GoogleBooksProvider,
    OpenLibraryProvider.name: OpenLibraryProvider,
}


def build_providers(names: Iterable[str] = config.METADATA_PROVIDERS, session: requests.Session | None = None) -> list[Provider]:
    session = session or requests.Session()
    providers: list[Provider] = []
    for name in names:
        cls = PROVIDER_CLASSES.get(name)
        if cls is None:
            raise ValueError(f"Unknown metadata provider: {name!r}")
        providers.append(cls(session=session))
    return providers


# ========== Resolver ==========

class MetadataResolver:
    """
    Walks the providers in order and returns the first answer with a title.
    Provider failures are never raised: they only move on to the next one.
    Found results are cached per ISBN for `cache_ttl` seconds.
    """

    def __init__(
        self,
        providers: list[Provider],
        cache_ttl: float = config.TTL_META,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.providers = list(providers)
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._cache: dict[str, tuple[float, BookMetadata]] = {}
        self._lock = threading.Lock()

    def resolve(self, isbn: str) -> BookMetadata | None:
        cached = self._cached(isbn)
        if cached:
            logger.debug("Metadata cache hit for %s", isbn)
            return cached

        logger.info("Looking up ISBN %s", isbn)
        for provider in self.providers:
            mapper = MAPPERS.get(provider.name)
            try:
                payload = provider.lookup(isbn)
                if payload is None:
                    continue
                metadata = mapper(isbn, payload) if mapper else None
            except ProviderError as e:
                logger.warning("Provider error, trying next: %s", e)
                continue
            except Exception:
                logger.exception("Unexpected failure in provider %s, trying next", provider.name)
                continue

            if metadata is None or not metadata.title:
                logger.info("%s returned no title for %s", provider.name, isbn)
                continue

            logger.info("%s answered for %s: %s", provider.name, isbn, metadata.title)
            self._remember(isbn, metadata)
            return metadata

        logger.info("No provider found data for ISBN %s", isbn)
        return None

    def _cached(self, isbn: str) -> BookMetadata | None:
        if self.cache_ttl <= 0:
            return None
        with self._lock:
            hit = self._cache.get(isbn)
            if not hit:
                return None
            expires, metadata = hit
            if self._clock() >= expires:
                del self._cache[isbn]
                return None
            return metadata

    def _remember(self, isbn: str, metadata: BookMetadata) -> None:
        if self.cache_ttl <= 0:
            return
        with self._lock:
            self._cache[isbn] = (self._clock() + self.cache_ttl, metadata)
