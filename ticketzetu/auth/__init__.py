"""Authentication: passwords, sessions, lockout, verification and reset."""

from __future__ import annotations

from ticketzetu.auth.geolocation import GeoLocation, GeolocationService
from ticketzetu.auth.service import AuthService
from ticketzetu.auth.session_cache import SessionCache
from ticketzetu.auth.username_check import UsernameChecker

__all__ = ["AuthService", "GeoLocation", "GeolocationService", "SessionCache", "UsernameChecker"]
