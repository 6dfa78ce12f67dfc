"""Reference decryption relayer.

Resolves a handle to plaintext for a requester, but only after the ACL
says the requester may see it. In production this is an external service
talking to the coprocessor; here it wraps the plaintext reference backend
so tests can check what an authorized party would actually learn.
"""

from __future__ import annotations

import logging

from progressvault.access.acl import AccessControlList
from progressvault.crypto.reference_backend import Plain, PlaintextReferenceBackend
from progressvault.errors import AccessDenied


logger = logging.getLogger(__name__)


class ReferenceRelayer:
    """ACL-gated disclosure over a PlaintextReferenceBackend."""

    def __init__(self, backend: PlaintextReferenceBackend, acl: AccessControlList) -> None:
        self._backend = backend
        self._acl = acl

    def user_decrypt(self, handle: str, requester: str) -> Plain:
        """Reveal ``handle`` to ``requester``. Raises AccessDenied."""
        if not self._acl.is_authorized(handle, requester):
            logger.warning("Decryption refused handle=%s requester=%s", handle, requester)
            raise AccessDenied(f"{requester} may not decrypt {handle}")
        return self._backend.reveal(handle)

    def public_decrypt(self, handle: str) -> Plain:
        """Reveal a handle that has been made public. Raises AccessDenied."""
        if not self._acl.is_public(handle):
            raise AccessDenied(f"Handle {handle} is not public")
        return self._backend.reveal(handle)
