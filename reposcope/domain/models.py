"""Domain models representing API resources and responses."""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterator, Mapping, Optional, Tuple, TypeVar
from urllib.parse import parse_qs, urlsplit

from reposcope.domain.errors import DeserializationError


T = TypeVar("T")


@dataclass(frozen=True)
class RepoIdentity:
    """Immutable identity of a repository (owner + name).

    Shared by reference between a repository handler and every builder
    derived from it.
    """
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        """Returns the full repository name (owner/name)."""
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class ApiResponse:
    """Raw result of a transport call, before deserialization."""
    status: int
    json: Any
    headers: Mapping[str, str] = field(default_factory=dict)
    links: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ReleaseAsset:
    """A binary file attached to a release."""
    id: int
    name: str
    size: int
    browser_download_url: Optional[str] = None
    content_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ReleaseAsset':
        try:
            return cls(
                id=data["id"],
                name=data["name"],
                size=data.get("size", 0),
                browser_download_url=data.get("browser_download_url"),
                content_type=data.get("content_type"),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise DeserializationError(f"Malformed release asset: {e}") from e


@dataclass(frozen=True)
class Release:
    """Immutable domain entity representing a repository release."""
    id: int
    tag_name: str
    target_commitish: Optional[str] = None
    name: Optional[str] = None
    body: Optional[str] = None
    draft: bool = False
    prerelease: bool = False
    created_at: Optional[str] = None
    published_at: Optional[str] = None
    html_url: Optional[str] = None
    url: Optional[str] = None
    author_login: Optional[str] = None
    assets: Tuple[ReleaseAsset, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Release':
        """Build a Release from a decoded JSON object.

        Only ``id`` and ``tag_name`` are mandatory; every other key may be
        missing or null.

        Raises:
            DeserializationError: If the object is not a mapping or lacks
                a mandatory key
        """
        if not isinstance(data, Mapping):
            raise DeserializationError(
                f"Expected a release object, got {type(data).__name__}"
            )
        try:
            author = data.get("author") or {}
            return cls(
                id=data["id"],
                tag_name=data["tag_name"],
                target_commitish=data.get("target_commitish"),
                name=data.get("name"),
                body=data.get("body"),
                draft=bool(data.get("draft", False)),
                prerelease=bool(data.get("prerelease", False)),
                created_at=data.get("created_at"),
                published_at=data.get("published_at"),
                html_url=data.get("html_url"),
                url=data.get("url"),
                author_login=author.get("login"),
                assets=tuple(
                    ReleaseAsset.from_dict(asset) for asset in data.get("assets") or []
                ),
            )
        except KeyError as e:
            raise DeserializationError(f"Release object is missing {e}") from e
        except (TypeError, AttributeError) as e:
            raise DeserializationError(f"Malformed release object: {e}") from e

    @classmethod
    def from_response(cls, response: ApiResponse) -> 'Release':
        return cls.from_dict(response.json)


@dataclass(frozen=True)
class ListingMetrics:
    """Metrics for a multi-page listing."""
    releases_fetched: int
    pages_fetched: int
    duration_seconds: float


def _page_param(url: Optional[str]) -> Optional[int]:
    if not url:
        return None
    values = parse_qs(urlsplit(url).query).get("page")
    if not values:
        return None
    try:
        return int(values[0])
    except ValueError:
        return None


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a paginated listing.

    Carries the items of the current page and the navigation links the
    server returned in its ``Link`` header. A page never fetches anything
    itself: to continue, send a new list request with ``next_page_number``.
    """
    items: Tuple[T, ...] = ()
    next: Optional[str] = None
    prev: Optional[str] = None
    first: Optional[str] = None
    last: Optional[str] = None
    total_count: Optional[int] = None
    incomplete_results: Optional[bool] = None

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def has_next(self) -> bool:
        return self.next is not None

    @property
    def next_page_number(self) -> Optional[int]:
        """The ``page`` query value of the next link, if there is one."""
        return _page_param(self.next)

    @property
    def last_page_number(self) -> Optional[int]:
        """The ``page`` query value of the last link; a total-pages hint."""
        return _page_param(self.last)

    @classmethod
    def from_response(
        cls,
        response: ApiResponse,
        item_parser: Callable[[Any], T],
    ) -> 'Page[T]':
        """Build a page from a list body or a search-style ``{"items": [...]}`` body.

        Args:
            response: Raw transport response
            item_parser: Converts one decoded JSON element into an item

        Raises:
            DeserializationError: If the body is neither shape
        """
        body = response.json
        total_count = None
        incomplete_results = None
        if isinstance(body, Mapping):
            if "items" not in body:
                raise DeserializationError("Paginated object has no 'items' key")
            total_count = body.get("total_count")
            incomplete_results = body.get("incomplete_results")
            body = body["items"]
        if not isinstance(body, list):
            raise DeserializationError(
                f"Expected a list of items, got {type(body).__name__}"
            )

        links: Dict[str, str] = dict(response.links)
        return cls(
            items=tuple(item_parser(element) for element in body),
            next=links.get("next"),
            prev=links.get("prev"),
            first=links.get("first"),
            last=links.get("last"),
            total_count=total_count,
            incomplete_results=incomplete_results,
        )

    @classmethod
    def parser(cls, item_parser: Callable[[Any], T]) -> Callable[[ApiResponse], 'Page[T]']:
        """Returns a deserializer producing pages of ``item_parser`` items."""
        def parse(response: ApiResponse) -> 'Page[T]':
            return cls.from_response(response, item_parser)
        return parse
