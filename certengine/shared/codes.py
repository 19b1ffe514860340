from __future__ import annotations

import secrets
import string
from typing import NamedTuple

CODE_ALPHABET = string.ascii_uppercase + string.digits
CERTIFICATE_CODE_PREFIX = "CERT-"
VERIFICATION_CODE_PREFIX = "VERIFY-"
CERTIFICATE_CODE_LENGTH = 12
VERIFICATION_CODE_LENGTH = 16
MAX_CODE_ATTEMPTS = 5


class CodePair(NamedTuple):
    certificate_code: str
    verification_code: str


def _random_token(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate() -> CodePair:
    """Draw an independent certificate code and verification code.

    Uniqueness is not checked here; callers compare against issued codes and
    draw again on collision, at most ``MAX_CODE_ATTEMPTS`` times.
    """

    return CodePair(
        certificate_code=CERTIFICATE_CODE_PREFIX + _random_token(CERTIFICATE_CODE_LENGTH),
        verification_code=VERIFICATION_CODE_PREFIX
        + _random_token(VERIFICATION_CODE_LENGTH),
    )
