"""
Project selector — builds the work batch from the paginated listing.

Pages are walked from page one in order, projects in listing order.
A project qualifies when it is a "pro" project, is not already in the
completed ledger, and (if any repo filters are configured) its
repository URL matches at least one of them. Selection stops the moment
the batch is full, even mid-page.

Selection is all-or-nothing: if any page cannot be fetched the whole
run stops before anything is mutated.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection, Iterator, Sequence
from typing import Protocol

from keyrotate.core.models.config import RotationConfig
from keyrotate.core.models.project import CIProject, ProjectPage
from keyrotate.core.services.codeship_api import DEFAULT_PER_PAGE, CodeshipAPIError

logger = logging.getLogger(__name__)


class SelectionError(Exception):
    """The project listing could not be read; no batch is produced."""


class ProjectDirectory(Protocol):
    def list_projects(self, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> ProjectPage: ...


def matching_repo_filter(
    repository_url: str, patterns: Sequence[re.Pattern[str]]
) -> re.Pattern[str] | None:
    """First pattern (in configuration order) found in the URL, if any."""
    for pattern in patterns:
        if pattern.search(repository_url):
            return pattern
    return None


def is_eligible(
    project: CIProject,
    completed: Collection[str],
    repo_filters: Sequence[re.Pattern[str]],
) -> bool:
    if not project.is_pro:
        return False
    if project.name in completed:
        return False
    if repo_filters and matching_repo_filter(project.repository_url, repo_filters) is None:
        logger.debug("Skipping %s: %s matches no repo filter", project.name, project.repository_url)
        return False
    return True


def iter_pages(directory: ProjectDirectory, per_page: int = DEFAULT_PER_PAGE) -> Iterator[ProjectPage]:
    """Yield listing pages in order until the last one.

    Raises:
        SelectionError: A page could not be fetched.
    """
    page_number = 1
    while True:
        try:
            page = directory.list_projects(page=page_number, per_page=per_page)
        except CodeshipAPIError as e:
            raise SelectionError(f"failed to list projects (page {page_number}): {e}") from e

        logger.debug("Fetched page %d: %d projects", page_number, len(page.projects))
        yield page

        if page.is_last:
            return
        if page.next_page is None or page.next_page <= page_number:
            logger.warning(
                "Listing returned non-advancing next page %s after page %d; stopping",
                page.next_page,
                page_number,
            )
            return
        page_number = page.next_page


def select_projects(
    directory: ProjectDirectory,
    config: RotationConfig,
    completed: Collection[str],
    per_page: int = DEFAULT_PER_PAGE,
) -> list[CIProject]:
    """Produce at most ``config.max_projects_per_run`` eligible projects.

    Args:
        directory: Source of the paginated project listing.
        config: Rotation settings (batch cap, repo filters).
        completed: Names already present in the completed ledger.
        per_page: Page size requested from the directory.

    Raises:
        SelectionError: Any page fetch failed.
    """
    cap = config.max_projects_per_run
    repo_filters = config.repo_filter_regexes
    selected: list[CIProject] = []

    if cap <= 0:
        return selected

    for page in iter_pages(directory, per_page=per_page):
        for project in page.projects:
            if not is_eligible(project, completed, repo_filters):
                continue
            selected.append(project)
            if len(selected) >= cap:
                logger.info("Batch full at %d projects (page %d)", cap, page.page)
                return selected

    logger.info("Selected %d projects", len(selected))
    return selected
