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
from typing import Any, Mapping, Optional

from session_sharing.shared.models import ClaimMapping, ExternalIdentity
from session_sharing.shared.jwt_utils import PayloadInvalidError


def synthesize_username(
    username: Optional[str],
    first_name: Optional[str],
    last_name: Optional[str],
) -> Optional[str]:
    """Explicit username wins, then 'first last', then first, then last."""
    if not username:
        username = " ".join(part for part in (first_name, last_name) if part)
    return (username or "").strip() or None


def _claim(source: Mapping[str, Any], key: Optional[str]) -> Any:
    if not key:
        return None
    return source.get(key)


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def extract_identity(payload: Mapping[str, Any], mapping: ClaimMapping) -> ExternalIdentity:
    """
    Pull the identity fields out of a verified payload.

    When `mapping.parent` is set all claims are read from `payload[parent]`,
    otherwise all are read from the payload itself.
    """
    source: Mapping[str, Any] = payload
    if mapping.parent:
        source = payload.get(mapping.parent)
        if not isinstance(source, Mapping):
            source = {}

    email = _text(_claim(source, mapping.email))
    if not email:
        raise PayloadInvalidError("missing email claim")

    external_id = _text(_claim(source, mapping.id))
    if not external_id:
        raise PayloadInvalidError("missing id claim")

    first_name = _text(_claim(source, mapping.first_name))
    last_name = _text(_claim(source, mapping.last_name))

    return ExternalIdentity(
        external_id=external_id,
        email=email,
        username=synthesize_username(_text(_claim(source, mapping.username)), first_name, last_name),
        first_name=first_name,
        last_name=last_name,
        picture=_text(_claim(source, mapping.picture)),
    )
