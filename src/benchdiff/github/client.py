import logging
from typing import Any

import httpx

from ..config.settings import GITHUB_TIMEOUT_SECONDS, GitHubSettings
from ..errors import GitHubError

logger = logging.getLogger(__name__)


class GitHubClient:
    """The handful of GitHub REST calls needed for pull request comments."""

    def __init__(self, settings: GitHubSettings, timeout: float = GITHUB_TIMEOUT_SECONDS) -> None:
        self._settings = settings
        self._timeout = timeout

    @property
    def settings(self) -> GitHubSettings:
        return self._settings

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        url = f"{self._settings.api_url}/repos/{self._settings.owner}/{self._settings.repo}{path}"
        headers = {
            "Authorization": f"Bearer {self._settings.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        try:
            with httpx.Client(timeout=self._timeout) as client:
                resp = client.request(method, url, json=payload, headers=headers)
        except httpx.RequestError as exc:
            raise GitHubError(f"GitHub API {method} {path} failed: {exc}") from exc

        if not resp.is_success:
            raise GitHubError(
                f"GitHub API {method} {path} error (status {resp.status_code}): {resp.text}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise GitHubError(f"GitHub API {method} {path} returned non-JSON response") from exc

    def create_comment(self, issue_number: int, body: str) -> int:
        data = self._request("POST", f"/issues/{issue_number}/comments", {"body": body})
        return int(data.get("id") or 0)

    def edit_comment(self, comment_id: int, body: str) -> None:
        self._request("PATCH", f"/issues/comments/{comment_id}", {"body": body})

    def add_reaction(self, comment_id: int, content: str) -> None:
        self._request("POST", f"/issues/comments/{comment_id}/reactions", {"content": content})

    def get_pull_request(self, number: int) -> dict[str, Any]:
        data = self._request("GET", f"/pulls/{number}")
        if not isinstance(data, dict):
            raise GitHubError(f"unexpected pull request payload for #{number}")
        return data
