from __future__ import annotations

from urllib.parse import urlsplit

from analysis_client.core.normalize import SHORT_LINK_HOSTS, ensure_https, normalize_handle
from analysis_client.domain import InputValidationError

VIDEO_HOSTS = {"www.tiktok.com", "tiktok.com", "m.tiktok.com"} | SHORT_LINK_HOSTS
_HANDLE_CHARS = set("abcdefghijklmnopqrstuvwxyz0123456789._")


def is_valid_video_url(url: str) -> bool:
    try:
        parsed = urlsplit(ensure_https(url))
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and (parsed.hostname or "").lower() in VIDEO_HOSTS


def is_valid_handle(handle: str) -> bool:
    normalized = normalize_handle(handle)
    return bool(normalized) and set(normalized.lower()) <= _HANDLE_CHARS


def validate_video_url(url: str) -> None:
    if not is_valid_video_url(url):
        raise InputValidationError("Please enter a valid TikTok video URL.")


def validate_handle(handle: str) -> None:
    if not is_valid_handle(handle):
        raise InputValidationError("Please enter a valid TikTok username.")
