"""Service walking every page of a repository's releases."""
import logging
import time
from typing import AsyncIterator, List, Optional, Tuple
from reposcope.application.client import GitHubClient
from reposcope.domain.models import ListingMetrics, Page, Release


logger = logging.getLogger(__name__)


class ReleaseService:
    """Application service for reading complete release listings.

    Pagination stays caller-driven: each page is requested by a new list
    builder whose ``page`` is the number advertised by the previous page.
    """

    def __init__(self, client: GitHubClient, per_page: int = 100):
        """Initialize release service.

        Args:
            client: API client the requests are sent through
            per_page: Number of releases requested per page (max 100)
        """
        self._client = client
        self._per_page = min(per_page, 100)

    async def iter_pages(self, owner: str, repo: str) -> AsyncIterator[Page[Release]]:
        """Yield every page of releases of ``owner/repo``, first page first."""
        releases = self._client.repos(owner, repo).releases()
        page_number = 1

        while True:
            page = await releases.list().per_page(self._per_page).page(page_number).send()
            yield page

            if not page.has_next:
                break
            # Always advance, even when the link has no page number or points backwards
            page_number = max(page.next_page_number or 0, page_number + 1)
            logger.info(f"Continuing {owner}/{repo} releases with page {page_number}")

    async def iter_releases(
        self,
        owner: str,
        repo: str,
        limit: Optional[int] = None,
    ) -> AsyncIterator[Release]:
        """Yield releases of ``owner/repo``, newest first, across pages.

        Args:
            owner: Repository owner
            repo: Repository name
            limit: Stop after this many releases; all of them when None

        Yields:
            Release domain entities
        """
        fetched = 0
        if limit is not None and limit <= 0:
            return

        pages = self.iter_pages(owner, repo)
        try:
            async for page in pages:
                for release in page:
                    yield release
                    fetched += 1
                    if limit is not None and fetched >= limit:
                        return
        finally:
            await pages.aclose()
            logger.info(f"Fetched {fetched} releases of {owner}/{repo}")

    async def collect_releases(
        self,
        owner: str,
        repo: str,
        limit: Optional[int] = None,
    ) -> Tuple[List[Release], ListingMetrics]:
        """Collect releases into a list.

        Returns:
            The releases and ListingMetrics with operation statistics
        """
        start_time = time.time()
        pages_fetched = 0
        collected: List[Release] = []

        if limit is None or limit > 0:
            async for page in self.iter_pages(owner, repo):
                pages_fetched += 1
                for release in page:
                    if limit is not None and len(collected) >= limit:
                        break
                    collected.append(release)
                if limit is not None and len(collected) >= limit:
                    break

        metrics = ListingMetrics(
            releases_fetched=len(collected),
            pages_fetched=pages_fetched,
            duration_seconds=time.time() - start_time,
        )
        logger.info(
            f"Listing completed: {metrics.releases_fetched} releases over "
            f"{metrics.pages_fetched} pages in {metrics.duration_seconds:.2f} seconds"
        )
        return collected, metrics
