"""
Registry factory.

Builds the registry client for the host named by an image reference, with
transport security, credentials and timeout taken from Settings.
"""
from __future__ import annotations

import logging

from ..settings import Settings
from .reference import ImageReference
from .registry_http import DockerAuth, RegistryHTTP

logger = logging.getLogger(__name__)


def make_registry(settings: Settings, ref: ImageReference) -> RegistryHTTP:
    """
    Create a registry client for the host of ref.

    Args:
        settings: Registry configuration
        ref: Image reference whose registry will be contacted

    Returns:
        RegistryHTTP client (close it, or use it as a context manager)

    Examples:
        >>> registry = make_registry(settings, parse_reference("localhost:5000/app:v1"))
        >>> registry.base_url
        'http://localhost:5000'
    """
    insecure = settings.registry_insecure or ref.is_local()
    credentials = None
    if settings.registry_user and settings.registry_pass:
        credentials = (settings.registry_user, settings.registry_pass)

    logger.debug(f"Registry client for {ref.registry} via {ref.api_host} "
                 f"({'http' if insecure else 'https'})")
    return RegistryHTTP(
        registry=ref.registry,
        api_host=ref.api_host,
        auth=DockerAuth(settings.docker_config_path),
        credentials=credentials,
        insecure=insecure,
        timeout=settings.http_timeout_s,
    )


__all__ = ["make_registry"]
