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
from typing import Mapping, Any, List, Optional

import httpx
from jose import jwt, exceptions

logger = logging.getLogger(__name__)


class BridgeException(Exception):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class ExchangeError(BridgeException):
    """The exchange endpoint could not be reached or answered with an error."""


class VerificationError(BridgeException):
    """The signed assertion is malformed, expired or not signed with our secret."""


class PayloadInvalidError(BridgeException):
    """A verified payload lacks a mandatory claim."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"payload-invalid: {reason}")


class ReconciliationError(BridgeException):
    """An identity index lookup, link write or profile write failed."""


async def exchange_token(
    endpoint: str,
    raw_token: str,
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Trades the opaque token found in the bridge cookie for a signed assertion.

    Returns the assertion string from the `token` field of the JSON response.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(
                endpoint,
                json={"refreshToken": raw_token},
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise ExchangeError(f"Token exchange failed: {e}") from e

    try:
        body = response.json()
    except ValueError as e:
        raise VerificationError("Exchange response is not valid JSON") from e

    assertion = body.get("token") if isinstance(body, dict) else None
    if not assertion or not isinstance(assertion, str):
        raise VerificationError("Exchange response does not carry a token")
    return assertion


def verify_assertion(assertion: str, secret: str, algorithms: List[str]) -> dict:
    try:
        return jwt.decode(assertion, secret, algorithms=algorithms)
    except exceptions.ExpiredSignatureError as e:
        raise VerificationError("jwt expired") from e
    except exceptions.JWTClaimsError as e:
        raise VerificationError(f"Invalid claims: {e}") from e
    except exceptions.JWTError as e:
        raise VerificationError(f"Invalid token signature: {e}") from e


def sign_assertion(payload: Mapping[str, Any], secret: str, algorithm: str = "HS256") -> str:
    return jwt.encode(dict(payload), secret, algorithm=algorithm)
