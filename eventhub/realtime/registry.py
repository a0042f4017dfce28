from __future__ import annotations


class ConnectionRegistry:
    """Process-local map between connected sockets and user ids.

    One active socket per user: a reconnect overwrites the previous sid, and
    the stale sid's disconnect no longer takes the user offline. Mutated only
    from event-loop coroutines.
    """

    def __init__(self) -> None:
        self._sid_by_user: dict[str, str] = {}
        self._user_by_sid: dict[str, str] = {}

    def add(self, user_id: object, sid: str) -> str | None:
        key = str(user_id)
        previous = self._sid_by_user.get(key)
        self._sid_by_user[key] = sid
        self._user_by_sid[sid] = key
        return previous

    def remove_sid(self, sid: str) -> str | None:
        """Drop a socket; returns the user id only if that user went offline."""
        user_id = self._user_by_sid.pop(sid, None)
        if user_id is None:
            return None
        if self._sid_by_user.get(user_id) != sid:
            return None
        del self._sid_by_user[user_id]
        return user_id

    def sid_for(self, user_id: object) -> str | None:
        return self._sid_by_user.get(str(user_id))

    def user_for(self, sid: str) -> str | None:
        return self._user_by_sid.get(sid)

    def is_online(self, user_id: object) -> bool:
        return str(user_id) in self._sid_by_user

    def user_ids(self) -> list[str]:
        return list(self._sid_by_user)

    def clear(self) -> None:
        self._sid_by_user.clear()
        self._user_by_sid.clear()

    def __len__(self) -> int:
        return len(self._sid_by_user)
