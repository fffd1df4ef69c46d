"""Google reCAPTCHA verifier."""

import requests

from funding.verification.port import ChallengeVerifier

VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


class RecaptchaVerifier(ChallengeVerifier):
    def __init__(self, secret: str, timeout: float = 8) -> None:
        self.secret = secret
        self.timeout = timeout

    def verify(self, token: str, remote_ip: str | None) -> dict:
        data = {"secret": self.secret, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip
        resp = requests.post(VERIFY_URL, data=data, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()
