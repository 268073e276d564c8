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
Admin and debug routes of the session bridge for FastAPI.

The admin check is left to the host: pass a dependency that raises when the
current user is not an administrator.
"""

import html
import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import HTMLResponse

from session_sharing.shared.admin import (
    ADMIN_PAGE_PATH,
    ADMIN_API_PATH,
    DEBUG_SESSION_PATH,
    DEBUG_COOKIE_MAX_AGE,
    masked_settings,
    debug_assertion,
)
from session_sharing.shared.settings import SettingsLoader

logger = logging.getLogger(__name__)


def _allow_all() -> None:
    return None


def create_router(
    loader: SettingsLoader,
    require_admin: Optional[Callable] = None,
    debug: bool = False,
) -> APIRouter:
    """
    Args:
        loader: The settings loader shared with the gatekeeper.
        require_admin: FastAPI dependency guarding the admin routes.
        debug: Mount `/debug/session`. Never enable in production.
    """
    router = APIRouter()
    admin = Depends(require_admin or _allow_all)

    @router.get(ADMIN_API_PATH, dependencies=[admin])
    async def get_settings():
        return {"ready": loader.ready, "settings": masked_settings(loader.current())}

    @router.post(f"{ADMIN_API_PATH}/reload", dependencies=[admin])
    async def reload_settings():
        ready = await loader.reload()
        return {"ready": ready}

    @router.get(ADMIN_PAGE_PATH, dependencies=[admin], response_class=HTMLResponse)
    async def render_admin_page():
        rows = "".join(
            f"<tr><th>{html.escape(str(key))}</th><td>{html.escape(str(value))}</td></tr>"
            for key, value in masked_settings(loader.current()).items()
        )
        status = "ready" if loader.ready else "disabled"
        return f"<h1>Session Sharing</h1><p>Status: {status}</p><table>{rows}</table>"

    if debug:
        @router.get(DEBUG_SESSION_PATH)
        async def generate_session():
            settings = loader.current()
            response = Response(status_code=200)
            response.set_cookie(
                settings.cookie_name,
                debug_assertion(settings),
                max_age=DEBUG_COOKIE_MAX_AGE,
                httponly=True,
                domain=settings.cookie_domain,
            )
            return response

    return router
