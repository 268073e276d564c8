#    Copyright 2025 FAO
#
#    Licensed under the Apache License, Version 2.0 (the "License");
#    you may not use this file except in compliance with the License.
#    You may obtain a copy of the License at
#
#        http://www.apache.org/licenses/LICENSE-2.0
#
#    Unless required by applicable law or agreed to in writing, software
#    distributed under the License is distributed on an "AS IS" BASIS,
#    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#    See the License for the specific language governing permissions and
#    limitations under the License.
#
#    Author: Carlo Cancellieri (ccancellieri@gmail.com)
#    Company: FAO, Viale delle Terme di Caracalla, 00100 Rome, Italy
#    Contact: copyright@fao.org - http://fao.org/contact-us/terms/en/
import asyncio
import logging
import weakref
from typing import Any, Callable, Optional

from session_sharing.shared.models import BridgeSettings, ExternalIdentity, ReconciledUser
from session_sharing.shared.stores import UserStore
from session_sharing.shared.jwt_utils import BridgeException, ReconciliationError

logger = logging.getLogger(__name__)


def parse_uid(value: Any) -> Optional[int]:
    """Return a positive int uid out of a stored index value, or None."""
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    try:
        uid = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return uid if uid > 0 else None


class UserReconciler:
    """
    Maps an external identity onto a local account.

    Decision order:
        1. external id already linked   -> reuse that uid
        2. email belongs to an account  -> link the external id to it (merge)
        3. otherwise                    -> create a new account and link it
    The username is synced one way, remote to local, in cases 1 and 2.
    """

    def __init__(
        self,
        store: UserStore,
        settings: Callable[[], BridgeSettings],
        serialize_first_login: bool = False,
    ):
        """
        Args:
            store: Identity indexes and profile primitives.
            settings: Returns the current settings snapshot.
            serialize_first_login: Hold a per external id lock around the
                read-then-write sequence. Off by default: concurrent first
                logins of one identity may then create two accounts.
        """
        self.store = store
        self._settings = settings
        self.serialize_first_login = serialize_first_login
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def reconcile(self, identity: ExternalIdentity, settings: Optional[BridgeSettings] = None) -> ReconciledUser:
        settings = settings or self._settings()
        if not self.serialize_first_login:
            return await self._reconcile(identity, settings.name)

        lock = self._locks.get(identity.external_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[identity.external_id] = lock
        async with lock:
            return await self._reconcile(identity, settings.name)

    async def _reconcile(self, identity: ExternalIdentity, namespace: str) -> ReconciledUser:
        try:
            linked, merge = await asyncio.gather(
                self.store.uid_by_external_id(namespace, identity.external_id),
                self.store.uid_by_email(identity.email),
            )

            uid = parse_uid(linked)
            if uid:
                await self._sync_username(uid, identity.username)
                return ReconciledUser(uid=uid, external_id=identity.external_id)

            uid = parse_uid(merge)
            if uid:
                logger.info(
                    f"[session-sharing] Found user via their email, associating this id "
                    f"({identity.external_id}) with their local account"
                )
                await self.store.link_external_id(namespace, identity.external_id, uid)
                await self._sync_username(uid, identity.username)
                return ReconciledUser(uid=uid, external_id=identity.external_id)

            logger.info("[session-sharing] No user found, creating a new user for this login")
            uid = await self.store.create_user(
                username=identity.username or identity.email.split("@")[0],
                email=identity.email,
                picture=identity.picture,
                fullname=identity.fullname,
            )
            await self.store.link_external_id(namespace, identity.external_id, uid)
            return ReconciledUser(uid=uid, external_id=identity.external_id)
        except BridgeException:
            raise
        except Exception as e:
            raise ReconciliationError(f"User reconciliation failed: {e}") from e

    async def _sync_username(self, uid: int, username: Optional[str]) -> None:
        if not username:
            return
        current = await self.store.get_username(uid)
        if current != username:
            logger.info(f"[session-sharing] Updating username of uid {uid}")
            await self.store.update_username(uid, username)
