"""User-Agent classification for sessions and security alerts."""

from __future__ import annotations

from ticketzetu.models.enums import DeviceType

# First match wins
_BROWSERS: tuple[tuple[str, str], ...] = (
    ("edg/", "Edge"),
    ("opr/", "Opera"),
    ("firefox/", "Firefox"),
    ("chrome/", "Chrome"),
    ("safari/", "Safari"),
)
_SYSTEMS: tuple[tuple[str, str], ...] = (
    ("android", "Android"),
    ("iphone", "iOS"),
    ("ipad", "iPadOS"),
    ("windows", "Windows"),
    ("macintosh", "macOS"),
    ("linux", "Linux"),
)


def detect_device_type(user_agent: str | None) -> DeviceType:
    """mobile, tablet, desktop (windows/macintosh) or unknown, by substring."""
    ua = (user_agent or "").lower()
    if "mobile" in ua:
        return DeviceType.MOBILE
    if "tablet" in ua:
        return DeviceType.TABLET
    if "windows" in ua or "macintosh" in ua:
        return DeviceType.DESKTOP
    return DeviceType.UNKNOWN


def describe_device(user_agent: str | None) -> str:
    """Human-readable summary such as "Chrome Desktop on Windows"."""
    ua = (user_agent or "").lower()
    browser = next((name for marker, name in _BROWSERS if marker in ua), "Unknown")
    system = next((name for marker, name in _SYSTEMS if marker in ua), "Unknown")
    device = detect_device_type(user_agent)
    label = "Device" if device is DeviceType.UNKNOWN else device.value.capitalize()
    return f"{browser} {label} on {system}"
