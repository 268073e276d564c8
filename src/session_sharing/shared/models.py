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
import re
from typing import Optional, Dict, Any, List, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Flat keys as stored by the settings backend -> field names on the models.
STORE_KEYS = {
    "name": "name",
    "cookieName": "cookie_name",
    "cookieDomain": "cookie_domain",
    "secret": "secret",
    "behaviour": "behaviour",
    "exchangeTokenEndpoint": "exchange_token_endpoint",
    "logoutEndpoint": "logout_endpoint",
    "guestRedirect": "guest_redirect",
    "url": "url",
    "relative_path": "relative_path",
}

PAYLOAD_KEYS = {
    "payload:id": "id",
    "payload:email": "email",
    "payload:username": "username",
    "payload:firstName": "first_name",
    "payload:lastName": "last_name",
    "payload:picture": "picture",
    "payload:parent": "parent",
}


class ClaimMapping(BaseModel):
    """Claim names used to read identity fields out of a verified payload."""
    model_config = ConfigDict(frozen=True)

    id: str = Field("id", description="Claim holding the external user id.")
    email: str = Field("email", description="Claim holding the email address (mandatory).")
    username: Optional[str] = Field(None, description="Claim holding an explicit username.")
    first_name: Optional[str] = Field(None, description="Claim holding the first name.")
    last_name: Optional[str] = Field(None, description="Claim holding the last name.")
    picture: Optional[str] = Field("picture", description="Claim holding the avatar URL.")
    parent: Optional[str] = Field(None, description="If set, every claim is read from payload[parent].")


class BridgeSettings(BaseModel):
    """
    Immutable session-sharing configuration.

    A new instance is built on every reload and swapped in as a whole,
    so a request always sees one consistent snapshot.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field("appId", description="Namespace of the external id index.")
    cookie_name: str = Field("token", description="Name of the bridge cookie.")
    cookie_domain: Optional[str] = Field(None, description="Domain of the bridge cookie.")
    secret: str = Field("", description="Shared secret used to verify assertions.")
    algorithms: List[str] = Field(default_factory=lambda: ["HS256"], min_length=1)
    behaviour: str = Field("trust", description="'trust' accepts an existing local session as sufficient.")
    payload: ClaimMapping = Field(default_factory=ClaimMapping)
    exchange_token_endpoint: str = Field("", description="Endpoint exchanging the raw token for a signed assertion.")
    logout_endpoint: Optional[str] = Field(None, description="Where to send users after a local logout.")
    guest_redirect: Optional[str] = Field(None, description="Guest redirect target, '%1' receives the return URL.")
    url: str = Field("", description="Public base URL of the host application.")
    relative_path: str = Field("", description="Mount prefix of the host application.")
    excluded_routes: str = Field("api|vendor|uploads|language|templates|debug")
    excluded_extensions: str = Field("css|js|tpl|json")
    timeout: float = Field(10.0, description="Timeout in seconds of the exchange call.")

    @field_validator("excluded_routes", "excluded_extensions")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid pattern {value!r}: {e}") from e
        return value

    @field_validator("algorithms", mode="before")
    @classmethod
    def _split_algorithms(cls, value: Any) -> Any:
        # Hash-backed stores only hold strings: "HS256,HS512"
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("relative_path")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def trusts_session(self) -> bool:
        return self.behaviour == "trust"

    @property
    def excluded_route_pattern(self) -> "re.Pattern[str]":
        return re.compile(f"^{re.escape(self.relative_path)}/({self.excluded_routes})")

    @property
    def excluded_extension_pattern(self) -> "re.Pattern[str]":
        return re.compile(f"\\.({self.excluded_extensions})$")

    @classmethod
    def from_store(cls, data: Mapping[str, Any]) -> "BridgeSettings":
        """Build settings from the flat key layout used by the settings store."""
        fields: Dict[str, Any] = {}
        payload: Dict[str, Any] = {}
        for key, value in data.items():
            if key in STORE_KEYS:
                fields[STORE_KEYS[key]] = value
            elif key in PAYLOAD_KEYS:
                payload[PAYLOAD_KEYS[key]] = value
            elif key in cls.model_fields:
                fields[key] = value
        if payload:
            fields["payload"] = ClaimMapping(**payload)
        return cls(**fields)

    def to_store(self) -> Dict[str, Any]:
        """Inverse of `from_store`, used by the admin API."""
        data = {key: getattr(self, field) for key, field in STORE_KEYS.items()}
        data.update({key: getattr(self.payload, field) for key, field in PAYLOAD_KEYS.items()})
        for field in type(self).model_fields:
            if field != "payload" and field not in STORE_KEYS.values():
                data[field] = getattr(self, field)
        return data


class ExternalIdentity(BaseModel):
    external_id: str = Field(..., description="User id at the identity provider.")
    email: str = Field(..., description="Email address, the mandatory anchor field.")
    username: Optional[str] = Field(None, description="Explicit or synthesized username.")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    picture: Optional[str] = None

    @property
    def fullname(self) -> str:
        return " ".join([self.first_name or "", self.last_name or ""]).strip()


class ReconciledUser(BaseModel):
    uid: int = Field(..., description="Local user id the external identity resolved to.")
    external_id: str = Field(..., description="User id at the identity provider.")
