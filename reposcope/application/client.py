"""Top-level API client."""
from typing import Any, Callable, Optional, TypeVar

from reposcope.application.repos import RepoHandler
from reposcope.config import Settings
from reposcope.domain.errors import InvalidArgumentError
from reposcope.domain.models import Page
from reposcope.domain.transport_interface import ITransport
from reposcope.infrastructure.http_transport import AiohttpTransport


T = TypeVar("T")


class GitHubClient:
    """Client for the hosting service's REST API.

    Owns a transport and hands out resource handlers. Usable as an async
    context manager, which closes the transport on exit.
    """

    def __init__(self, transport: ITransport):
        """Initialize the client.

        Args:
            transport: Transport every request is sent through
        """
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> 'GitHubClient':
        return cls(AiohttpTransport(settings))

    @classmethod
    def from_env(cls) -> 'GitHubClient':
        """Build a client configured from environment variables."""
        return cls.from_settings(Settings.from_env())

    def repos(self, owner: str, repo: str) -> RepoHandler:
        """Handler for the repository ``owner/repo``.

        Raises:
            InvalidArgumentError: If either name is blank
        """
        return RepoHandler(self, owner, repo)

    async def get_page(
        self,
        url: Optional[str],
        item_parser: Callable[[Any], T],
    ) -> Optional[Page[T]]:
        """Fetch the page a pagination link points to.

        Args:
            url: A link taken from a previous page (``page.next`` etc.)
            item_parser: Converts one decoded JSON element into an item

        Returns:
            The page, or None when ``url`` is None (no such page)
        """
        if url is None:
            return None
        if not url.strip():
            raise InvalidArgumentError("Page URL must not be empty")
        return await self.transport.get(url, None, Page.parser(item_parser))

    async def close(self) -> None:
        """Close the underlying transport."""
        await self.transport.close()

    async def __aenter__(self) -> 'GitHubClient':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
