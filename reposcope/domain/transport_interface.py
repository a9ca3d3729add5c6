"""Transport interface (port) for executing API requests.

Request builders only ever talk to this interface; authentication, base URL,
connection handling and retries live behind it.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional, TypeVar
from reposcope.domain.models import ApiResponse


R = TypeVar("R")

Deserializer = Callable[[ApiResponse], R]


class ITransport(ABC):
    """Abstract interface for API transports."""

    @abstractmethod
    async def get(
        self,
        route: str,
        params: Optional[Mapping[str, Any]],
        deserializer: Deserializer,
    ) -> R:
        """Issue a read-only GET request.

        Args:
            route: Path relative to the API base URL, or an absolute URL
            params: Query parameters; ``None`` sends none
            deserializer: Converts the raw response into the result type

        Returns:
            The deserialized result

        Raises:
            TransportError: On network failure or a non-2xx status
            DeserializationError: When the body does not match the result type
        """
        pass

    @abstractmethod
    async def post(
        self,
        route: str,
        body: Optional[Mapping[str, Any]],
        deserializer: Deserializer,
    ) -> R:
        """Issue a mutating POST request with a JSON body.

        Same contract as :meth:`get`.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass
