"""Integrations with libVLC and the story platform API."""

from .platform_api import PlatformApiClient, PlatformApiError
from .vlc_media import VlcMediaSource, build_vlc_media_factory

__all__ = [
    "PlatformApiClient",
    "PlatformApiError",
    "VlcMediaSource",
    "build_vlc_media_factory",
]
