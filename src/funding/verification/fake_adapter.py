"""Fake verification adapters for development and testing."""

from funding.verification.port import ChallengeVerifier, PopularityVerifier


class FakePopularityVerifier(PopularityVerifier):
    def __init__(self) -> None:
        self.repositories: dict[str, int] = {}
        self.calls: list[str] = []

    def add(self, handle: str, stars: int) -> None:
        self.repositories[handle] = stars

    def stars(self, handle: str) -> int:
        self.calls.append(handle)
        if "/" in handle:
            if handle not in self.repositories:
                raise LookupError(f"Repository {handle} not found")
            return self.repositories[handle]

        owned = [stars for name, stars in self.repositories.items() if name.split("/")[0] == handle]
        if not owned:
            raise LookupError(f"Organization {handle} not found")
        return max(owned)


class FakeChallengeVerifier(ChallengeVerifier):
    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.calls: list[dict] = []

    def verify(self, token: str, remote_ip: str | None) -> dict:
        self.calls.append({"token": token, "remote_ip": remote_ip})
        if self.should_succeed:
            return {"success": True, "score": 0.9, "hostname": "localhost"}
        return {"success": False, "error-codes": ["invalid-input-response"]}
