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
from typing import Optional

from pydantic import ValidationError

from session_sharing.shared.models import BridgeSettings
from session_sharing.shared.stores import SettingsStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "session-sharing"


class SettingsLoader:
    """
    Owns the current `BridgeSettings` snapshot and the `ready` flag.

    `reload()` builds a complete new snapshot and swaps it in with a single
    assignment; readers call `current()` once per request and keep using
    that object.
    """

    def __init__(self, store: SettingsStore, defaults: Optional[BridgeSettings] = None):
        self.store = store
        self.defaults = defaults or BridgeSettings()
        self._state = (False, self.defaults)

    @property
    def ready(self) -> bool:
        return self._state[0]

    def current(self) -> BridgeSettings:
        return self._state[1]

    def snapshot(self):
        """Return `(ready, settings)` read together."""
        return self._state

    async def reload(self) -> bool:
        """
        Fetch settings from the store and swap them in.

        A missing secret disables the bridge; it is logged, not raised.
        Store errors propagate to the caller.
        """
        stored = await self.store.get(SETTINGS_KEY)

        if not stored.get("secret"):
            logger.error("[session-sharing] JWT Secret not found, session sharing disabled.")
            self._state = (False, self.defaults)
            return False

        merged = self.defaults.to_store()
        merged.update({key: value for key, value in stored.items() if value})
        merged = {key: value for key, value in merged.items() if value is not None}
        try:
            settings = BridgeSettings.from_store(merged)
        except ValidationError as e:
            logger.error(f"[session-sharing] Invalid settings, session sharing disabled: {e}")
            self._state = (False, self.defaults)
            return False

        self._state = (True, settings)
        logger.info("[session-sharing] Settings OK")
        return True
