"""Verification adapter registry.

Uses fake verifiers by default. VERIFICATION_ADAPTER=live switches to the
GitHub API (GITHUB_TOKEN optional) and Google reCAPTCHA (RECAPTCHA_SECRET).
"""

import os

from funding.verification.port import ChallengeVerifier, PopularityVerifier

_popularity_instance: PopularityVerifier | None = None
_challenge_instance: ChallengeVerifier | None = None


def _adapter() -> str:
    adapter = os.environ.get("VERIFICATION_ADAPTER", "fake")
    if adapter not in ("fake", "live"):
        raise ValueError(f"Unknown verification adapter: {adapter}")
    return adapter


def get_popularity_verifier() -> PopularityVerifier:
    global _popularity_instance
    if _popularity_instance is None:
        if _adapter() == "live":
            from funding.verification.github_adapter import GithubPopularityVerifier

            _popularity_instance = GithubPopularityVerifier(token=os.environ.get("GITHUB_TOKEN"))
        else:
            from funding.verification.fake_adapter import FakePopularityVerifier

            _popularity_instance = FakePopularityVerifier()
    return _popularity_instance


def get_challenge_verifier() -> ChallengeVerifier:
    global _challenge_instance
    if _challenge_instance is None:
        if _adapter() == "live":
            from funding.verification.recaptcha_adapter import RecaptchaVerifier

            _challenge_instance = RecaptchaVerifier(secret=os.environ["RECAPTCHA_SECRET"])
        else:
            from funding.verification.fake_adapter import FakeChallengeVerifier

            _challenge_instance = FakeChallengeVerifier()
    return _challenge_instance


def set_verifiers(
    popularity: PopularityVerifier | None = None,
    challenge: ChallengeVerifier | None = None,
) -> None:
    global _popularity_instance, _challenge_instance
    if popularity is not None:
        _popularity_instance = popularity
    if challenge is not None:
        _challenge_instance = challenge


def reset_verifiers() -> None:
    """Reset the verifier singletons (useful for testing)."""
    global _popularity_instance, _challenge_instance
    _popularity_instance = None
    _challenge_instance = None
