"""Per-handle access control list.

Each ciphertext handle carries:
- a holder flag: the ledger process itself may keep computing on it,
- an append-only set of principals allowed to request disclosure,
- a one-way public flag.

There is no revoke path. Once granted, access persists for the life of
the handle; later submissions produce new handles instead of changing
old ones.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from progressvault.models.metric import normalize_principal


logger = logging.getLogger(__name__)


@dataclass
class HandleAccess:
    """ACL entry for one handle."""
    holder: bool = False
    principals: set[str] = field(default_factory=set)
    public: bool = False


class AccessControlList:
    """Handle -> HandleAccess map with grow-only semantics.

    ``holder_address`` is the identity of the ledger process. It is
    authorized on a handle through authorize_holder(), never through
    authorize().
    """

    def __init__(self, holder_address: str) -> None:
        self._holder = normalize_principal(holder_address)
        self._entries: dict[str, HandleAccess] = {}
        # Prior state of each handle touched since begin(); None while idle.
        self._journal: Optional[dict[str, Optional[HandleAccess]]] = None

    @property
    def holder_address(self) -> str:
        return self._holder

    def authorize_holder(self, handle: str) -> None:
        self._entry(handle).holder = True

    def authorize(self, handle: str, principal: str) -> None:
        """Add principal to the handle's set. Raises InvalidPrincipal."""
        who = normalize_principal(principal)
        self._entry(handle).principals.add(who)
        logger.debug("ACL grant %s -> %s", handle, who)

    def make_public(self, handle: str) -> None:
        self._entry(handle).public = True
        logger.debug("ACL public %s", handle)

    def is_authorized(self, handle: str, principal: str) -> bool:
        entry = self._entries.get(handle)
        if entry is None:
            return False
        if entry.public:
            return True
        try:
            who = normalize_principal(principal)
        except ValueError:
            return False
        if entry.holder and who == self._holder:
            return True
        return who in entry.principals

    def is_public(self, handle: str) -> bool:
        entry = self._entries.get(handle)
        return entry is not None and entry.public

    def has_entry(self, handle: str) -> bool:
        return handle in self._entries

    # ------------------------------------------------------------------
    # Host transaction support
    # ------------------------------------------------------------------

    def begin(self) -> None:
        """Start recording changes so rollback() can undo them."""
        self._journal = {}

    def commit(self) -> None:
        self._journal = None

    def rollback(self) -> None:
        """Undo every change since begin(). Only touched handles are restored."""
        if self._journal is None:
            return
        for handle, prior in self._journal.items():
            if prior is None:
                self._entries.pop(handle, None)
            else:
                self._entries[handle] = prior
        self._journal = None

    def to_dict(self) -> dict[str, Any]:
        return {
            handle: {
                "holder": e.holder,
                "principals": sorted(e.principals),
                "public": e.public,
            }
            for handle, e in self._entries.items()
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        self._entries = {
            handle: HandleAccess(
                holder=e.get("holder", False),
                principals=set(e.get("principals", [])),
                public=e.get("public", False),
            )
            for handle, e in data.items()
        }

    def _entry(self, handle: str) -> HandleAccess:
        entry = self._entries.get(handle)
        if self._journal is not None and handle not in self._journal:
            self._journal[handle] = copy.deepcopy(entry)
        if entry is None:
            entry = HandleAccess()
            self._entries[handle] = entry
        return entry
