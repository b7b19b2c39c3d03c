"""
Codeship API client — just the calls a key rotation needs.

    authenticate (basic auth → bearer token + organization list)
    list projects (paginated)
    reset a project's AES key

Tokens are short-lived; the client re-authenticates before a call once
the previous token has expired. Failed calls are never retried.
"""

from __future__ import annotations

import logging
import time
from typing import Any
from urllib.parse import parse_qs, urlparse

import requests
from pydantic import BaseModel, Field, ValidationError

from keyrotate.core.models.config import PlatformCredentials
from keyrotate.core.models.project import CIProject, ProjectPage

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.codeship.com/v2"
DEFAULT_PER_PAGE = 50

# Refresh a little before the advertised expiry.
_TOKEN_EXPIRY_MARGIN_S = 60


class CodeshipAPIError(Exception):
    """Raised when a platform API call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class Organization(BaseModel):
    uuid: str
    name: str
    scopes: list[str] = Field(default_factory=list)


class CodeshipClient:
    """Thin requests-based client for the Codeship v2 API.

    Usage:
        client = CodeshipClient(credentials)
        client.select_organization()          # authenticates on demand
        page = client.list_projects(page=1)
        updated = client.reset_project_aes_key(project.uuid)
    """

    def __init__(
        self,
        credentials: PlatformCredentials,
        base_url: str = API_BASE_URL,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ):
        self._credentials = credentials
        self._base = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout
        self._token: str | None = None
        self._expires_at: float = 0.0
        self._organizations: list[Organization] = []
        self._organization: Organization | None = None

    # ── Auth ────────────────────────────────────────────────────

    def authenticate(self) -> None:
        """Exchange basic credentials for a bearer token."""
        logger.debug("Authenticating to %s as %s", self._base, self._credentials.username)
        try:
            resp = self._session.post(
                f"{self._base}/auth",
                auth=(self._credentials.username, self._credentials.password),
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise CodeshipAPIError(f"authentication request failed: {e}") from e

        data = self._json_or_raise(resp, "authenticate")
        token = data.get("access_token")
        if not token:
            raise CodeshipAPIError("authentication response carried no access token")

        self._token = token
        self._expires_at = float(data.get("expires_at") or 0)
        try:
            self._organizations = [
                Organization.model_validate(o) for o in data.get("organizations") or []
            ]
        except ValidationError as e:
            raise CodeshipAPIError(
                f"authentication returned a malformed organization: {_errors(e)}"
            ) from None

    def select_organization(self, name: str | None = None) -> Organization:
        """Resolve the organization to act on (case-insensitive name match)."""
        self._ensure_token()
        wanted = (name or self._credentials.organization).lower()
        for org in self._organizations:
            if org.name.lower() == wanted:
                self._organization = org
                logger.info("Using organization %s (%s)", org.name, org.uuid)
                return org
        raise CodeshipAPIError(f"organization {wanted!r} not found for this user")

    @property
    def organization(self) -> Organization:
        if self._organization is None:
            return self.select_organization()
        return self._organization

    # ── Projects ────────────────────────────────────────────────

    def list_projects(self, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> ProjectPage:
        """Fetch one page of the organization's projects."""
        org = self.organization
        resp = self._request(
            "GET",
            f"/organizations/{org.uuid}/projects",
            params={"page": page, "per_page": per_page},
        )
        data = self._json_or_raise(resp, f"list projects (page {page})")

        try:
            projects = [CIProject.model_validate(p) for p in data.get("projects") or []]
            total = int(data.get("total") or 0)
            size = int(data.get("per_page") or per_page)
            current = int(data.get("page") or page)
        except ValidationError as e:
            raise CodeshipAPIError(
                f"list projects (page {page}) returned a malformed project: {_errors(e)}"
            ) from None
        except (TypeError, ValueError) as e:
            raise CodeshipAPIError(f"list projects (page {page}) returned bad paging: {e}") from e

        return ProjectPage(
            projects=projects,
            page=current,
            per_page=size,
            total=total,
            next_page=_next_page(resp, current, size, total),
        )

    def reset_project_aes_key(self, project_uuid: str) -> CIProject:
        """Ask the platform for a fresh AES key; returns the updated project."""
        org = self.organization
        resp = self._request(
            "POST",
            f"/organizations/{org.uuid}/projects/{project_uuid}/reset_aes_key",
        )
        data = self._json_or_raise(resp, f"reset AES key for {project_uuid}")
        try:
            project = CIProject.model_validate(data.get("project", data))
        except ValidationError as e:
            raise CodeshipAPIError(
                f"reset AES key for {project_uuid} returned a malformed project: {_errors(e)}"
            ) from None
        if not project.aes_key:
            raise CodeshipAPIError(f"reset AES key for {project_uuid} returned no key")
        return project

    # ── Helpers ─────────────────────────────────────────────────

    def _ensure_token(self) -> None:
        if self._token is None or (
            self._expires_at and time.time() >= self._expires_at - _TOKEN_EXPIRY_MARGIN_S
        ):
            self.authenticate()

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        self._ensure_token()
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._token}",
        }
        try:
            return self._session.request(
                method,
                f"{self._base}{path}",
                headers=headers,
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            raise CodeshipAPIError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _json_or_raise(resp: requests.Response, what: str) -> dict[str, Any]:
        if not resp.ok:
            body = (resp.text or "").strip()
            raise CodeshipAPIError(
                f"{what} failed with HTTP {resp.status_code}: {body[:500]}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise CodeshipAPIError(f"{what} returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise CodeshipAPIError(f"{what} returned {type(data).__name__}, expected an object")
        return data


def _next_page(resp: requests.Response, page: int, per_page: int, total: int) -> int | None:
    """Next page number from the Link header, falling back to totals."""
    links = getattr(resp, "links", None) or {}
    next_link = links.get("next", {}).get("url")
    if next_link:
        values = parse_qs(urlparse(next_link).query).get("page")
        if values and values[0].isdigit():
            return int(values[0])
        return page + 1
    if links:
        return None
    if total and per_page and page * per_page < total:
        return page + 1
    return None


def _errors(exc: ValidationError) -> str:
    """Field locations and messages only; inputs may carry AES keys."""
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
        for err in exc.errors()
    )
