"""Verifiers: validate fetched bytes before they reach the filesystem"""

import hashlib
import logging
from typing import Protocol

from plugctl.core.exceptions import VerificationError

logger = logging.getLogger(__name__)


class Verifier(Protocol):
    """Consumes the artifact bytes, then accepts or rejects them"""

    def write(self, data: bytes) -> None:
        ...

    def verify(self) -> None:
        ...


class Sha256Verifier:
    """Compare the sha256 of everything written against an expected digest"""

    def __init__(self, expected_sha256: str):
        self.expected = expected_sha256.strip().lower()
        self._hash = hashlib.sha256()

    def write(self, data: bytes) -> None:
        self._hash.update(data)

    def verify(self) -> None:
        """
        Raises:
            VerificationError: If the digest differs
        """
        actual = self._hash.hexdigest()
        if actual != self.expected:
            raise VerificationError(
                f"sha256 mismatch: expected {self.expected}, got {actual}",
                hint="The downloaded artifact may be corrupted or tampered with"
            )
        logger.info(f"SHA256 verification passed: {actual}")


class InsecureVerifier:
    """Accepts anything; used for HEAD installs which carry no checksum"""

    def write(self, data: bytes) -> None:
        pass

    def verify(self) -> None:
        logger.warning("Skipping integrity verification")
