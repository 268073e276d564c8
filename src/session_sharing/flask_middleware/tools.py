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
Flask helpers for the session bridge: a login-required decorator and the
admin/debug blueprint.
"""

import html
import logging
from functools import wraps
from typing import Callable, Optional

from flask import Blueprint, g, abort, jsonify, make_response

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


def require_session(f):
    """
    Flask decorator requiring a bridged local session.

    Usage:
        @app.route("/account")
        @require_session
        def account():
            return jsonify(uid=g.uid)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.get("uid"):
            logger.warning("require_session: No local session, aborting 401.")
            abort(401, description="Not authenticated")
        return f(*args, **kwargs)
    return decorated_function


def create_blueprint(
    loader: SettingsLoader,
    is_admin: Optional[Callable[[], bool]] = None,
    debug: bool = False,
) -> Blueprint:
    bp = Blueprint("session_sharing", __name__)

    def admin_only(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if is_admin is not None and not is_admin():
                abort(403)
            return f(*args, **kwargs)
        return decorated_function

    @bp.get(ADMIN_API_PATH)
    @admin_only
    def get_settings():
        return jsonify(ready=loader.ready, settings=masked_settings(loader.current()))

    @bp.post(f"{ADMIN_API_PATH}/reload")
    @admin_only
    async def reload_settings():
        ready = await loader.reload()
        return jsonify(ready=ready)

    @bp.get(ADMIN_PAGE_PATH)
    @admin_only
    def render_admin_page():
        rows = "".join(
            f"<tr><th>{html.escape(str(key))}</th><td>{html.escape(str(value))}</td></tr>"
            for key, value in masked_settings(loader.current()).items()
        )
        status = "ready" if loader.ready else "disabled"
        return f"<h1>Session Sharing</h1><p>Status: {status}</p><table>{rows}</table>"

    if debug:
        @bp.get(DEBUG_SESSION_PATH)
        def generate_session():
            settings = loader.current()
            response = make_response("", 200)
            response.set_cookie(
                settings.cookie_name,
                debug_assertion(settings),
                max_age=DEBUG_COOKIE_MAX_AGE,
                httponly=True,
                domain=settings.cookie_domain,
            )
            return response

    return bp
