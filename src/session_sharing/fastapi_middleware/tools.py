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
FastAPI dependencies exposing the bridged local session to endpoints.
"""

import logging
from typing import Optional

from fastapi import Request, HTTPException, Depends

logger = logging.getLogger(__name__)


def get_current_uid(request: Request) -> Optional[int]:
    """
    FastAPI dependency returning the local uid, or None for guests.

    Usage:
        @app.get("/")
        async def home(uid: Optional[int] = Depends(get_current_uid)):
            return {"message": f"Hello, user {uid}" if uid else "Hello, guest"}
    """
    return getattr(request.state, "uid", None)


def require_session(uid: Optional[int] = Depends(get_current_uid)) -> int:
    """
    FastAPI dependency requiring a local session, raising 401 for guests.
    """
    if not uid:
        logger.warning("require_session: No local session, raising 401.")
        raise HTTPException(status_code=401, detail="Not authenticated")
    return uid
