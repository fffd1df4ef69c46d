"""GitHub popularity verifier using the public REST API."""

import requests

from funding.verification.port import PopularityVerifier

GITHUB_API = "https://api.github.com"


class GithubPopularityVerifier(PopularityVerifier):
    def __init__(self, token: str | None = None, timeout: float = 8) -> None:
        self.timeout = timeout
        self.headers = {"Accept": "application/vnd.github+json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    def _get(self, path: str, **params):
        resp = requests.get(f"{GITHUB_API}{path}", params=params, headers=self.headers, timeout=self.timeout)
        if resp.status_code == 404:
            raise LookupError(f"GitHub resource {path} not found")
        resp.raise_for_status()
        return resp.json()

    def stars(self, handle: str) -> int:
        if "/" in handle:
            return int(self._get(f"/repos/{handle}").get("stargazers_count", 0))

        repos = self._get(f"/orgs/{handle}/repos", per_page=100, sort="updated")
        return max((int(repo.get("stargazers_count", 0)) for repo in repos), default=0)
