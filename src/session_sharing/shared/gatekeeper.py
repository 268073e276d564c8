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
import logging
from enum import Enum
from typing import Any, List, Mapping, MutableMapping, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field

from session_sharing.shared.models import BridgeSettings
from session_sharing.shared.settings import SettingsLoader
from session_sharing.shared.stores import SettingsStore, UserStore
from session_sharing.shared.verifier import TokenVerifier
from session_sharing.shared.claims import extract_identity
from session_sharing.shared.reconciler import UserReconciler, parse_uid
from session_sharing.shared.jwt_utils import BridgeException, PayloadInvalidError

logger = logging.getLogger(__name__)

LOGOUT_PATH = "/logout"
SESSION_UID_KEY = "uid"
SESSION_LOGOUT_KEY = "logout"


class GateState(str, Enum):
    PASSTHROUGH = "passthrough"
    NEEDS_BRIDGE = "needs_bridge"
    FORCE_LOGOUT = "force_logout"
    ESTABLISHED = "established"
    GUEST_REDIRECT = "guest_redirect"


class GateResult(BaseModel):
    state: GateState = Field(..., description="Final decision for this request.")
    transitions: List[GateState] = Field(default_factory=list, description="States visited, in order.")
    uid: Optional[int] = Field(None, description="Local uid, set when the session was established.")
    redirect_url: Optional[str] = None
    clear_cookie: bool = Field(False, description="The adapter must expire the bridge cookie.")


def session_uid(session: Mapping[str, Any]) -> Optional[int]:
    return parse_uid(session.get(SESSION_UID_KEY))


class SessionGatekeeper:
    """
    Decides, for every inbound request, whether it passes through untouched,
    gets a local session bridged from the provider cookie, is logged out,
    or is redirected.

    The gatekeeper only reads the path and cookies and mutates the session
    mapping; framework adapters turn the returned `GateResult` into a
    response.
    """

    def __init__(self, loader: SettingsLoader, verifier: TokenVerifier, reconciler: UserReconciler):
        self.loader = loader
        self.verifier = verifier
        self.reconciler = reconciler

    def is_excluded(self, path: str, settings: BridgeSettings) -> bool:
        return bool(
            settings.excluded_route_pattern.match(path)
            or settings.excluded_extension_pattern.search(path)
        )

    async def process(
        self,
        path: str,
        session: MutableMapping[str, Any],
        cookies: Mapping[str, str],
    ) -> GateResult:
        ready, settings = self.loader.snapshot()
        uid = session_uid(session)
        # Cookie cleanup on logout runs whatever the session policy is.
        clear_cookie = ready and path == LOGOUT_PATH and bool(settings.cookie_domain)

        if not ready or (settings.trusts_session and uid) or self.is_excluded(path, settings):
            return GateResult(
                state=GateState.PASSTHROUGH,
                transitions=[GateState.PASSTHROUGH],
                clear_cookie=clear_cookie,
            )

        if path == LOGOUT_PATH:
            session[SESSION_LOGOUT_KEY] = True
            return GateResult(
                state=GateState.PASSTHROUGH,
                transitions=[GateState.PASSTHROUGH],
                clear_cookie=clear_cookie,
            )

        if session.get(SESSION_LOGOUT_KEY):
            session[SESSION_LOGOUT_KEY] = False
            if settings.logout_endpoint:
                return GateResult(
                    state=GateState.GUEST_REDIRECT,
                    transitions=[GateState.GUEST_REDIRECT],
                    redirect_url=settings.logout_endpoint,
                )
            return GateResult(state=GateState.PASSTHROUGH, transitions=[GateState.PASSTHROUGH])

        transitions: List[GateState] = []
        raw_token = cookies.get(settings.cookie_name)
        if raw_token:
            transitions.append(GateState.NEEDS_BRIDGE)
            established = await self._bridge(raw_token, settings)
            if established is not None:
                logger.info(f"[session-sharing] Processing login for uid {established}")
                session[SESSION_UID_KEY] = established
                transitions.append(GateState.ESTABLISHED)
                return GateResult(state=GateState.ESTABLISHED, transitions=transitions, uid=established)
        elif uid:
            logger.info(f"[session-sharing] Session for uid {uid} has no bridge cookie, logging out")
            session.pop(SESSION_UID_KEY, None)
            transitions.append(GateState.FORCE_LOGOUT)

        return self._handle_guest(path, settings, transitions)

    async def _bridge(self, raw_token: str, settings: BridgeSettings) -> Optional[int]:
        try:
            payload = await self.verifier.exchange_and_verify(raw_token, settings)
            identity = extract_identity(payload, settings.payload)
            user = await self.reconciler.reconcile(identity, settings)
            return user.uid
        except PayloadInvalidError as e:
            logger.warning(
                f"[session-sharing] The passed-in payload was invalid and could not be processed ({e.reason})"
            )
        except BridgeException as e:
            logger.warning(f"[session-sharing] Error encountered while parsing token: {e.detail}")
        except Exception as e:
            logger.error(f"[session-sharing] Unexpected error while bridging session: {e}", exc_info=True)
        return None

    def _handle_guest(self, path: str, settings: BridgeSettings, transitions: List[GateState]) -> GateResult:
        if settings.guest_redirect:
            return_url = quote(settings.url + path, safe="-_.!~*'()")
            transitions.append(GateState.GUEST_REDIRECT)
            return GateResult(
                state=GateState.GUEST_REDIRECT,
                transitions=transitions,
                redirect_url=settings.guest_redirect.replace("%1", return_url),
            )
        transitions.append(GateState.PASSTHROUGH)
        return GateResult(state=GateState.PASSTHROUGH, transitions=transitions)


def build_gatekeeper(
    settings_store: SettingsStore,
    user_store: UserStore,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    serialize_first_login: bool = False,
) -> SessionGatekeeper:
    """Wire loader, verifier and reconciler around one settings snapshot source.

    Call `await gatekeeper.loader.reload()` at startup before serving requests.
    """
    loader = SettingsLoader(settings_store)
    verifier = TokenVerifier(loader.current, transport=transport)
    reconciler = UserReconciler(user_store, loader.current, serialize_first_login=serialize_first_login)
    return SessionGatekeeper(loader, verifier, reconciler)
