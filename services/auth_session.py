from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, List, Optional


@dataclass(frozen=True)
class AuthUser:
    id: str
    access_token: Optional[str] = None


class AuthSession:
    """Holds the signed-in user; sign-in itself happens elsewhere."""

    def __init__(self, user: Optional[AuthUser] = None) -> None:
        self._user = user
        self._lock = threading.Lock()
        self._listeners: List[Callable[[Optional[AuthUser]], None]] = []

    @property
    def user(self) -> Optional[AuthUser]:
        return self._user

    @property
    def user_id(self) -> Optional[str]:
        user = self._user
        return user.id if user else None

    def access_token(self) -> Optional[str]:
        user = self._user
        return user.access_token if user else None

    def sign_in(self, user_id: str, access_token: Optional[str] = None) -> AuthUser:
        user = AuthUser(id=user_id, access_token=access_token)
        self._set(user)
        return user

    def sign_out(self) -> None:
        self._set(None)

    def on_change(self, callback: Callable[[Optional[AuthUser]], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return _unsubscribe

    def _set(self, user: Optional[AuthUser]) -> None:
        with self._lock:
            self._user = user
            listeners = list(self._listeners)
        for listener in listeners:
            listener(user)


__all__ = ["AuthSession", "AuthUser"]
