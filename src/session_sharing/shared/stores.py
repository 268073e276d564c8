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
Storage collaborators of the session bridge.

The bridge never owns user profiles or settings; it talks to them through
`UserStore` and `SettingsStore`. In-memory implementations are provided for
tests and single-process deployments, Redis ones for shared deployments.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

EMAIL_INDEX = "email:uid"
USERNAME_INDEX = "username:uid"


class UserStore(ABC):
    """
    Identity indexes and the few user-profile primitives the reconciler needs.

    Lookups return the raw stored value (string, bytes, float score or None);
    the reconciler decides whether it is a usable uid.
    """

    @abstractmethod
    async def uid_by_external_id(self, namespace: str, external_id: str) -> Any:
        pass

    @abstractmethod
    async def uid_by_email(self, email: str) -> Any:
        pass

    @abstractmethod
    async def link_external_id(self, namespace: str, external_id: str, uid: int) -> None:
        pass

    @abstractmethod
    async def get_username(self, uid: int) -> Optional[str]:
        pass

    @abstractmethod
    async def update_username(self, uid: int, username: str) -> None:
        pass

    @abstractmethod
    async def create_user(
        self,
        username: str,
        email: str,
        picture: Optional[str] = None,
        fullname: str = "",
    ) -> int:
        pass


class SettingsStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Dict[str, Any]:
        """Return the flat settings hash stored under `key` ({} when absent)."""
        pass


class InMemoryUserStore(UserStore):
    def __init__(self):
        self.users: Dict[int, Dict[str, Any]] = {}
        self.external_ids: Dict[str, Dict[str, int]] = {}
        self.emails: Dict[str, int] = {}
        self._next_uid = 0

    async def uid_by_external_id(self, namespace: str, external_id: str) -> Any:
        return self.external_ids.get(namespace, {}).get(external_id)

    async def uid_by_email(self, email: str) -> Any:
        return self.emails.get(email.lower())

    async def link_external_id(self, namespace: str, external_id: str, uid: int) -> None:
        self.external_ids.setdefault(namespace, {})[external_id] = uid

    async def get_username(self, uid: int) -> Optional[str]:
        return self.users.get(uid, {}).get("username")

    async def update_username(self, uid: int, username: str) -> None:
        if uid not in self.users:
            raise KeyError(f"No user with uid {uid}")
        self.users[uid]["username"] = username

    async def create_user(self, username, email, picture=None, fullname=""):
        self._next_uid += 1
        uid = self._next_uid
        self.users[uid] = {
            "uid": uid,
            "username": username,
            "email": email,
            "picture": picture,
            "fullname": fullname,
        }
        self.emails[email.lower()] = uid
        return uid


class InMemorySettingsStore(SettingsStore):
    def __init__(self, data: Optional[Dict[str, Dict[str, Any]]] = None):
        self.data = data if data is not None else {}

    async def get(self, key: str) -> Dict[str, Any]:
        return dict(self.data.get(key, {}))

    async def set(self, key: str, values: Dict[str, Any]) -> None:
        self.data[key] = dict(values)


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisUserStore(UserStore):
    """
    Redis layout:
        <namespace>:uid   hash    external id -> uid
        email:uid         zset    email scored by uid
        username:uid      zset    username scored by uid
        user:<uid>        hash    profile fields
        global            hash    nextUid counter
    """

    def __init__(self, client: "redis.asyncio.Redis"):
        self.client = client

    async def uid_by_external_id(self, namespace: str, external_id: str) -> Any:
        return await self.client.hget(f"{namespace}:uid", external_id)

    async def uid_by_email(self, email: str) -> Any:
        return await self.client.zscore(EMAIL_INDEX, email.lower())

    async def link_external_id(self, namespace: str, external_id: str, uid: int) -> None:
        await self.client.hset(f"{namespace}:uid", external_id, uid)

    async def get_username(self, uid: int) -> Optional[str]:
        return _decode(await self.client.hget(f"user:{uid}", "username"))

    async def update_username(self, uid: int, username: str) -> None:
        previous = await self.get_username(uid)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(f"user:{uid}", "username", username)
            if previous:
                pipe.zrem(USERNAME_INDEX, previous)
            pipe.zadd(USERNAME_INDEX, {username: uid})
            await pipe.execute()

    async def create_user(self, username, email, picture=None, fullname=""):
        uid = int(await self.client.hincrby("global", "nextUid", 1))
        profile = {
            "uid": uid,
            "username": username,
            "email": email,
            "picture": picture,
            "fullname": fullname,
        }
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(f"user:{uid}", mapping={k: v for k, v in profile.items() if v is not None})
            pipe.zadd(EMAIL_INDEX, {email.lower(): uid})
            pipe.zadd(USERNAME_INDEX, {username: uid})
            await pipe.execute()
        logger.debug(f"Created user {uid} in redis")
        return uid


class RedisSettingsStore(SettingsStore):
    def __init__(self, client: "redis.asyncio.Redis", prefix: str = "settings:"):
        self.client = client
        self.prefix = prefix

    async def get(self, key: str) -> Dict[str, Any]:
        raw = await self.client.hgetall(f"{self.prefix}{key}")
        return {_decode(k): _decode(v) for k, v in raw.items()}
