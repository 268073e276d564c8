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
from unittest.mock import AsyncMock

import pytest

from session_sharing.shared.models import BridgeSettings, ClaimMapping
from session_sharing.shared.settings import SettingsLoader, SETTINGS_KEY
from session_sharing.shared.stores import InMemorySettingsStore, SettingsStore


@pytest.mark.asyncio
async def test_missing_secret_disables_bridge(caplog):
    loader = SettingsLoader(InMemorySettingsStore({SETTINGS_KEY: {"cookieName": "sso"}}))

    with caplog.at_level(logging.ERROR):
        assert await loader.reload() is False

    assert loader.ready is False
    assert "JWT Secret not found" in caplog.text


@pytest.mark.asyncio
async def test_reload_merges_over_defaults():
    store = InMemorySettingsStore({
        SETTINGS_KEY: {
            "secret": "s",
            "cookieName": "sso",
            "cookieDomain": "",
            "payload:firstName": "given_name",
            "payload:parent": "user",
            "exchangeTokenEndpoint": "https://idp/exchange",
            "guestRedirect": "https://idp/login?return=%1",
        }
    })
    loader = SettingsLoader(store)

    assert await loader.reload() is True
    settings = loader.current()
    assert loader.ready is True
    assert settings.cookie_name == "sso"
    assert settings.cookie_domain is None
    assert settings.name == "appId"
    assert settings.behaviour == "trust"
    assert settings.payload.first_name == "given_name"
    assert settings.payload.parent == "user"
    assert settings.payload.email == "email"
    assert settings.guest_redirect == "https://idp/login?return=%1"


@pytest.mark.asyncio
async def test_reload_swaps_whole_snapshot():
    store = InMemorySettingsStore({SETTINGS_KEY: {"secret": "one"}})
    loader = SettingsLoader(store)
    await loader.reload()
    before = loader.current()

    await store.set(SETTINGS_KEY, {"secret": "two", "behaviour": "revalidate"})
    await loader.reload()

    assert before.secret == "one"
    assert before.behaviour == "trust"
    assert loader.current() is not before
    assert loader.current().secret == "two"
    assert loader.current().trusts_session is False


@pytest.mark.asyncio
async def test_reload_is_idempotent():
    loader = SettingsLoader(InMemorySettingsStore({SETTINGS_KEY: {"secret": "s"}}))
    await loader.reload()
    first = loader.current()
    await loader.reload()
    assert loader.current() == first


@pytest.mark.asyncio
async def test_secret_removed_on_reload_disables_bridge():
    store = InMemorySettingsStore({SETTINGS_KEY: {"secret": "s"}})
    loader = SettingsLoader(store)
    await loader.reload()
    await store.set(SETTINGS_KEY, {})

    await loader.reload()
    assert loader.ready is False


@pytest.mark.asyncio
async def test_invalid_pattern_disables_bridge():
    loader = SettingsLoader(InMemorySettingsStore({SETTINGS_KEY: {"secret": "s", "excluded_routes": "(api"}}))
    assert await loader.reload() is False
    assert loader.ready is False


@pytest.mark.asyncio
async def test_store_error_propagates():
    store = AsyncMock(spec=SettingsStore)
    store.get.side_effect = ConnectionError("settings unavailable")
    loader = SettingsLoader(store)

    with pytest.raises(ConnectionError):
        await loader.reload()
    assert loader.ready is False


def test_store_keys_round_trip():
    settings = BridgeSettings(
        secret="s",
        cookie_domain=".example.com",
        payload=ClaimMapping(username="nick", parent="data"),
    )
    assert BridgeSettings.from_store(settings.to_store()) == settings


def test_excluded_patterns_honour_relative_path():
    settings = BridgeSettings(relative_path="/forum/")
    assert settings.relative_path == "/forum"
    assert settings.excluded_route_pattern.match("/forum/api/config")
    assert not settings.excluded_route_pattern.match("/api/config")
    assert settings.excluded_extension_pattern.search("/assets/app.js")


@pytest.mark.asyncio
async def test_comma_separated_algorithms_from_store():
    loader = SettingsLoader(InMemorySettingsStore({SETTINGS_KEY: {"secret": "s", "algorithms": "HS256, HS512"}}))

    assert await loader.reload() is True
    assert loader.current().algorithms == ["HS256", "HS512"]


def test_single_algorithm_string_is_accepted():
    assert BridgeSettings(algorithms="HS384").algorithms == ["HS384"]
