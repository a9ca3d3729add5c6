"""Handler and request builders for a repository's releases."""
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import quote

from reposcope.application.builder import (
    U8_MAX,
    U32_MAX,
    RequestBuilder,
    param,
    require_text,
    to_flag,
    to_text,
    to_unsigned,
)
from reposcope.domain.models import Page, Release

if TYPE_CHECKING:
    from reposcope.application.repos import RepoHandler


logger = logging.getLogger(__name__)

RELEASES_ROUTE = "/repos/{owner}/{repo}/releases"


class ReleasesHandler:
    """Handler for the releases of one repository.

    Created with :meth:`RepoHandler.releases`. Holds nothing but a reference
    to its parent; every operation starts from a fresh builder::

        page = await client.repos("owner", "repo").releases().list().per_page(100).page(5).send()

        release = await (
            client.repos("owner", "repo")
            .releases()
            .create("v1.0.0")
            .target_commitish("main")
            .name("Version 1.0.0")
            .draft(False)
            .send()
        )
    """

    def __init__(self, parent: 'RepoHandler'):
        self.parent = parent

    @property
    def route(self) -> str:
        identity = self.parent.identity
        return RELEASES_ROUTE.format(
            owner=quote(identity.owner, safe=""),
            repo=quote(identity.name, safe=""),
        )

    def list(self) -> 'ListReleasesBuilder':
        """Start a request listing releases."""
        return ListReleasesBuilder(self)

    def create(self, tag_name: str) -> 'CreateReleaseBuilder':
        """Start a request creating a release for ``tag_name``.

        Raises:
            InvalidArgumentError: If ``tag_name`` is not a non-blank string
        """
        return CreateReleaseBuilder(self, require_text(tag_name, "tag_name"))


@dataclass(frozen=True)
class ListReleasesBuilder(RequestBuilder):
    """Builder for listing releases; created by :meth:`ReleasesHandler.list`."""
    handler: ReleasesHandler = param(serialize=False, required=True)
    _per_page: Optional[int] = param(wire_name="per_page")
    _page: Optional[int] = param(wire_name="page")

    def per_page(self, per_page: Any) -> 'ListReleasesBuilder':
        """Results per page (max 100)."""
        return self._set(_per_page=to_unsigned(per_page, U8_MAX, "per_page"))

    def page(self, page: Any) -> 'ListReleasesBuilder':
        """Page number of the results to fetch."""
        return self._set(_page=to_unsigned(page, U32_MAX, "page"))

    async def send(self) -> Page[Release]:
        """Sends the actual request."""
        return await self.handler.parent.transport.get(
            self.handler.route,
            self.to_params(),
            Page.parser(Release.from_dict),
        )


@dataclass(frozen=True)
class CreateReleaseBuilder(RequestBuilder):
    """Builder for creating a release; created by :meth:`ReleasesHandler.create`."""
    handler: ReleasesHandler = param(serialize=False, required=True)
    tag_name: str = param(required=True)
    _target_commitish: Optional[str] = param(wire_name="target_commitish")
    _name: Optional[str] = param(wire_name="name")
    _body: Optional[str] = param(wire_name="body")
    _draft: Optional[bool] = param(wire_name="draft")
    _prerelease: Optional[bool] = param(wire_name="prerelease")

    def target_commitish(self, target_commitish: str) -> 'CreateReleaseBuilder':
        """The branch or commit SHA the Git tag is created from.

        Unused if the tag already exists. The server defaults to the
        repository's default branch.
        """
        return self._set(_target_commitish=to_text(target_commitish, "target_commitish"))

    def name(self, name: str) -> 'CreateReleaseBuilder':
        """The name of the release."""
        return self._set(_name=to_text(name, "name"))

    def body(self, body: str) -> 'CreateReleaseBuilder':
        """Text describing the contents of the tag."""
        return self._set(_body=to_text(body, "body"))

    def draft(self, draft: bool) -> 'CreateReleaseBuilder':
        """Whether the release is a draft."""
        return self._set(_draft=to_flag(draft, "draft"))

    def prerelease(self, prerelease: bool) -> 'CreateReleaseBuilder':
        """Whether the release is a prerelease."""
        return self._set(_prerelease=to_flag(prerelease, "prerelease"))

    async def send(self) -> Release:
        """Sends the actual request."""
        logger.debug(f"Creating release {self.tag_name} in {self.handler.parent.identity.full_name}")
        return await self.handler.parent.transport.post(
            self.handler.route,
            self.to_params(),
            Release.from_response,
        )
