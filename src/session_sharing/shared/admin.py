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
from typing import Any, Dict

from session_sharing.shared.models import BridgeSettings
from session_sharing.shared.jwt_utils import sign_assertion

ADMIN_PAGE_PATH = "/admin/plugins/session-sharing"
ADMIN_API_PATH = "/api/admin/plugins/session-sharing"
DEBUG_SESSION_PATH = "/debug/session"
DEBUG_COOKIE_MAX_AGE = 60 * 60 * 24 * 21


def masked_settings(settings: BridgeSettings) -> Dict[str, Any]:
    data = settings.to_store()
    if data.get("secret"):
        data["secret"] = "********"
    return data


def debug_assertion(settings: BridgeSettings) -> str:
    """Self-signed test assertion for a fixed test user."""
    mapping = settings.payload
    payload: Dict[str, Any] = {mapping.id: 1, mapping.email: "testUser@example.org"}
    if mapping.username:
        payload[mapping.username] = "testUser"
    if mapping.parent:
        payload = {mapping.parent: payload}
    return sign_assertion(payload, settings.secret, settings.algorithms[0])
