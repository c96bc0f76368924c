"""Multi-strategy user search.

Document stores without full-text search need a chain of lookups to find
users by a fragment of their name:

1. a prefix range query on ``username`` (cheap, misses infix matches),
2. a client-side filter over a batch of recently created users,
3. as a last resort, a client-side filter over a full scan.

Each step is a candidate provider. ``UserSearch`` runs them in order until
enough unique candidates are found, de-duplicates by key, ranks, and caches
the result per term.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, Protocol, runtime_checkable

from .cache import MISSING, TTLCache
from .exceptions import SearchFailed, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MIN_TERM_LENGTH = 2
DEFAULT_RESULT_LIMIT = 10
DEFAULT_SEARCH_FIELDS = ("username", "displayName", "email")

# Upper bound appended to a prefix to form a range query (prefix <= x <= prefix + HIGH)
PREFIX_RANGE_END = "\uf8ff"

Candidate = dict[str, Any]


def normalize_term(term: str) -> str:
    """Lower-case and trim a search term."""
    return (term or "").strip().lower()


def prefix_range(term: str) -> tuple[str, str]:
    """Return the (start, end) bounds of a prefix range query for a term."""
    return term, term + PREFIX_RANGE_END


@runtime_checkable
class CandidateProvider(Protocol):
    """A lookup strategy returning candidate user documents for a term."""

    @property
    def name(self) -> str:
        """Short name used in logs and errors."""
        ...

    async def find(self, term: str) -> list[Candidate]:
        """Return candidates for a trimmed term, case kept (no ordering required)."""
        ...


class PrefixProvider:
    """
    Delegates to a prefix range query.

    The term is passed through with its case kept, since range queries on
    the stored username are case-sensitive.

    Args:
        fetch: Async callable ``(start, end, limit) -> list[dict]`` running a
            range query on the username
        limit: Maximum documents requested from the store
    """

    def __init__(
        self,
        fetch: Callable[[str, str, int], Awaitable[list[Candidate]]],
        limit: int = DEFAULT_RESULT_LIMIT,
        name: str = "prefix",
    ) -> None:
        self._fetch = fetch
        self._limit = limit
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def find(self, term: str) -> list[Candidate]:
        start, end = prefix_range(term)
        return list(await self._fetch(start, end, self._limit))


class FilterProvider:
    """
    Filters a fetched batch of documents client-side.

    Matches when the term is a case-insensitive substring of any of the
    searched fields. Used both for the recent-users batch and for the
    full-scan fallback.

    Args:
        fetch_batch: Async callable returning the documents to filter
        fields: Document fields searched
    """

    def __init__(
        self,
        fetch_batch: Callable[[], Awaitable[list[Candidate]]],
        fields: Sequence[str] = DEFAULT_SEARCH_FIELDS,
        name: str = "filter",
    ) -> None:
        self._fetch_batch = fetch_batch
        self._fields = tuple(fields)
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def matches(self, candidate: Candidate, term: str) -> bool:
        needle = term.lower()
        for field in self._fields:
            value = candidate.get(field)
            if isinstance(value, str) and needle in value.lower():
                return True
        return False

    async def find(self, term: str) -> list[Candidate]:
        batch = await self._fetch_batch()
        return [candidate for candidate in batch if self.matches(candidate, term)]


def rank_key(term: str) -> Callable[[Candidate], tuple[int, str]]:
    """
    Build a sort key ranking candidates for a term.

    Order: exact username, username prefix, display-name prefix, anything
    else; ties broken by lower-cased username.
    """

    def key(candidate: Candidate) -> tuple[int, str]:
        username = str(candidate.get("username") or "").lower()
        display_name = str(candidate.get("displayName") or "").lower()
        if username == term:
            rank = 0
        elif username.startswith(term):
            rank = 1
        elif display_name.startswith(term):
            rank = 2
        else:
            rank = 3
        return rank, username

    return key


def merge_candidates(
    batches: Iterable[Iterable[Candidate]],
    key: str = "id",
) -> list[Candidate]:
    """De-duplicate candidates by key, keeping the first occurrence in order."""
    merged: dict[Any, Candidate] = {}
    for batch in batches:
        for candidate in batch:
            candidate_id = candidate.get(key)
            if candidate_id is None or candidate_id in merged:
                continue
            merged[candidate_id] = candidate
    return list(merged.values())


class UserSearch:
    """
    Fallback chain of candidate providers with ranking and caching.

    Args:
        providers: Providers tried in order
        cache: Result cache keyed by normalized term (None = no caching)
        min_term_length: Shorter terms return no results without any lookup
        limit: Maximum number of results
        key: Candidate field used for de-duplication
    """

    def __init__(
        self,
        providers: Sequence[CandidateProvider],
        cache: TTLCache | None = None,
        min_term_length: int = DEFAULT_MIN_TERM_LENGTH,
        limit: int = DEFAULT_RESULT_LIMIT,
        key: str = "id",
    ) -> None:
        if not providers:
            raise ValidationError("providers", providers, "At least one provider is required")
        if limit <= 0:
            raise ValidationError("limit", limit, "Must be positive")
        self.providers = list(providers)
        self.cache = cache
        self.min_term_length = min_term_length
        self.limit = limit
        self.key = key

    async def search(self, term: str) -> list[Candidate]:
        """
        Search users matching a term.

        Raises:
            SearchFailed: If a provider fails
        """
        trimmed = (term or "").strip()
        normalized = normalize_term(trimmed)
        if len(normalized) < self.min_term_length:
            return []

        if self.cache is not None:
            cached = self.cache.get(normalized)
            if cached is not MISSING:
                logger.debug("Search cache hit for %r", normalized)
                return list(cached)

        batches: list[list[Candidate]] = []
        for provider in self.providers:
            try:
                found = await provider.find(trimmed)
            except Exception as e:
                logger.warning(
                    "Error searching users for %r via %s", normalized, provider.name, exc_info=True
                )
                raise SearchFailed(normalized, provider.name, e) from e

            logger.debug(
                "Provider %s found %d candidates for %r", provider.name, len(found), normalized
            )
            batches.append(found)
            if len(merge_candidates(batches, self.key)) >= self.limit:
                break

        results = sorted(merge_candidates(batches, self.key), key=rank_key(normalized))
        results = results[: self.limit]

        if self.cache is not None:
            self.cache.set(normalized, list(results))
        return results
