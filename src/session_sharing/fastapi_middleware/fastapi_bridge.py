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

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse

from session_sharing.shared.gatekeeper import SessionGatekeeper, GateState, session_uid

logger = logging.getLogger(__name__)


class SessionSharingMiddleware(BaseHTTPMiddleware):
    """
    Middleware bridging the identity provider cookie into the local session
    of a FastAPI application.
    """

    def __init__(self, app, gatekeeper: SessionGatekeeper):
        super().__init__(app)
        self.gatekeeper = gatekeeper

    async def dispatch(self, request: Request, call_next):
        if "session" not in request.scope:
            logger.error("SessionMiddleware not detected.")
            raise RuntimeError("SessionSharingMiddleware requires SessionMiddleware to be installed.")

        result = await self.gatekeeper.process(request.url.path, request.session, request.cookies)
        logger.debug(f"Gatekeeper transitions for {request.url.path}: {[s.value for s in result.transitions]}")

        if result.state == GateState.GUEST_REDIRECT:
            return RedirectResponse(result.redirect_url, status_code=302)

        request.state.uid = session_uid(request.session)
        response = await call_next(request)

        if result.clear_cookie:
            settings = self.gatekeeper.loader.current()
            logger.debug("[session-sharing] Clearing cookie")
            response.delete_cookie(settings.cookie_name, path="/", domain=settings.cookie_domain)
        return response
