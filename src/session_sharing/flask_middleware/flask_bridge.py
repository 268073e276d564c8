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
"""
Flask Session Sharing

Flask extension running the session gatekeeper before every request.
"""

import logging
from typing import Optional

from flask import Flask, request, g, session, redirect
from werkzeug.local import LocalProxy

from session_sharing.shared.gatekeeper import SessionGatekeeper, GateState, session_uid

try:
    from asgiref.sync import async_to_sync
except ImportError:
    async_to_sync = None


def get_current_uid() -> Optional[int]:
    """Local uid of the current request, None for guests."""
    return g.get("uid")


current_uid: int = LocalProxy(get_current_uid)  # type: ignore

__all__ = ["FlaskSessionSharing", "current_uid"]

logger = logging.getLogger(__name__)


class FlaskSessionSharing:
    """
    Flask-compatible session bridge.
    """

    def __init__(self, app: Optional[Flask] = None, gatekeeper: SessionGatekeeper = None):
        self.gatekeeper = gatekeeper
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask):
        if self.gatekeeper is None:
            raise ValueError("FlaskSessionSharing requires a gatekeeper.")

        if not async_to_sync:
            logger.warning("[session-sharing] 'asgiref' is missing, falling back to asyncio.run per request. "
                           "Install with `pip install session-sharing-middleware[flask]`.")

        if not hasattr(app, 'session_interface') or app.session_interface is None:
            logger.error("Flask app requires a session_interface. Ensure secret_key is set.")
            raise RuntimeError("FlaskSessionSharing requires a session interface.")

        app.before_request(self._before_request_handler)
        app.after_request(self._after_request_handler)

    def _run(self, coro_fn, *args):
        if async_to_sync:
            return async_to_sync(coro_fn)(*args)
        import asyncio
        return asyncio.run(coro_fn(*args))

    def _before_request_handler(self):
        current_session = session._get_current_object()
        result = self._run(self.gatekeeper.process, request.path, current_session, dict(request.cookies))
        g.gate_result = result
        g.uid = session_uid(current_session)

        if result.state == GateState.GUEST_REDIRECT:
            return redirect(result.redirect_url)
        return None

    def _after_request_handler(self, response):
        result = g.get("gate_result")
        if result is not None and result.clear_cookie:
            settings = self.gatekeeper.loader.current()
            logger.debug("[session-sharing] Clearing cookie")
            response.delete_cookie(settings.cookie_name, path="/", domain=settings.cookie_domain)
        return response
