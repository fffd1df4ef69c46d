"""Verification checks applied while accepting an order."""

import requests
import structlog

from funding.account.requester import Requester
from funding.errors import ValidationFailed
from funding.verification import get_challenge_verifier, get_popularity_verifier

logger = structlog.get_logger(__name__)


def check_challenge(token: str | None, requester: Requester, remote_ip: str | None) -> dict | None:
    """Verify the anti-abuse challenge.

    Anonymous requests must carry a token. Authenticated requests may omit
    it; when they do send one it is verified all the same. Returns the
    verifier response so it can be kept with the order.
    """
    if not token:
        if requester.is_authenticated:
            return None
        raise ValidationFailed("Recaptcha token missing", field="recaptcha_token")

    try:
        response = get_challenge_verifier().verify(token, remote_ip)
    except requests.RequestException as exc:
        logger.error("Challenge verification unavailable", error=str(exc))
        raise ValidationFailed("Could not verify the recaptcha token", field="recaptcha_token") from exc

    if not response.get("success"):
        logger.warning("Challenge verification failed", remote_ip=remote_ip, response=response)
        raise ValidationFailed("Recaptcha verification failed", field="recaptcha_token")
    return response


def verify_pledge_target(github_handle: str, min_stars: int) -> int:
    """Require a GitHub repository or organization to be popular enough to pledge to."""
    is_repository = "/" in github_handle
    try:
        stars = get_popularity_verifier().stars(github_handle)
    except (LookupError, requests.RequestException) as exc:
        logger.warning("Pledge target verification failed", github_handle=github_handle, error=str(exc))
        raise ValidationFailed(
            f"We could not verify the GitHub {'repository' if is_repository else 'organization'} {github_handle}",
            field="github_handle",
        ) from exc

    if stars < min_stars:
        if is_repository:
            message = f"The repository {github_handle} needs at least {min_stars} stars to be pledged"
        else:
            message = (
                f"The organization {github_handle} needs at least one repository with {min_stars} stars to be pledged"
            )
        raise ValidationFailed(message, field="github_handle")
    return stars
