"""Handler bound to a single repository."""
from typing import TYPE_CHECKING

from reposcope.application.builder import require_text
from reposcope.application.releases import ReleasesHandler
from reposcope.domain.models import RepoIdentity
from reposcope.domain.transport_interface import ITransport

if TYPE_CHECKING:
    from reposcope.application.client import GitHubClient


class RepoHandler:
    """Entry point for the resources nested under ``/repos/{owner}/{repo}``.

    Created with :meth:`GitHubClient.repos`. The repository identity is
    created once here and every sub-handler and builder refers to it.
    """

    def __init__(self, client: 'GitHubClient', owner: str, repo: str):
        self.client = client
        self.identity = RepoIdentity(
            owner=require_text(owner, "owner"),
            name=require_text(repo, "repo"),
        )

    @property
    def transport(self) -> ITransport:
        return self.client.transport

    def releases(self) -> ReleasesHandler:
        """Handler for the repository's releases."""
        return ReleasesHandler(self)
