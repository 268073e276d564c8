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
from typing import Callable, Optional

import httpx

from session_sharing.shared.models import BridgeSettings
from session_sharing.shared.jwt_utils import exchange_token, verify_assertion

logger = logging.getLogger(__name__)


class TokenVerifier:
    """
    Exchanges the raw bridge token at the identity provider and verifies
    the signed assertion it returns against the shared secret.

    No retry is performed here; a failed exchange raises `ExchangeError`,
    a bad assertion raises `VerificationError`.
    """

    def __init__(
        self,
        settings: Callable[[], BridgeSettings],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            settings: Returns the current settings snapshot (usually `SettingsLoader.current`).
            transport: Optional httpx transport, e.g. a `MockTransport` in tests.
        """
        self._settings = settings
        self.transport = transport

    async def exchange_and_verify(self, raw_token: str, settings: Optional[BridgeSettings] = None) -> dict:
        settings = settings or self._settings()
        logger.debug(f"Exchanging token at {settings.exchange_token_endpoint}")
        assertion = await exchange_token(
            settings.exchange_token_endpoint,
            raw_token,
            timeout=settings.timeout,
            transport=self.transport,
        )
        payload = verify_assertion(assertion, settings.secret, settings.algorithms)
        logger.debug("[session-sharing] Assertion verified")
        return payload
