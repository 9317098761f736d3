"""
Registry HTTP Client for OCI Distribution API.

Implements the OciRegistry protocol over httpx with the Docker Registry v2
auth flow: requests go out anonymously (or with a cached token), a 401
challenge is answered with a Bearer token exchange or Basic credentials,
and the request is replayed once. Blob bodies stream in both directions.
"""
from __future__ import annotations

import base64
import json
import logging
import re
import time
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

import httpx

from .. import __version__
from ..digest import sha256_digest
from ..streams import CHUNK_SIZE, IterStream
from .oci_errors import OciAuthError, OciDigestMismatch, OciError, OciNotFound, OciUnsupportedMediaType
from .oci_media_types import ACCEPTED_MANIFEST_TYPES
from .oci_registry import FetchedManifest

logger = logging.getLogger(__name__)

# Keys Docker itself writes for Docker Hub credentials
DOCKER_HUB_AUTH_KEYS = (
    "https://index.docker.io/v1/",
    "index.docker.io",
    "docker.io",
    "registry-1.docker.io",
)

# Seconds subtracted from token lifetime before it is considered stale
TOKEN_EXPIRY_MARGIN_S = 30


class DockerAuth:
    """Handle Docker Registry authentication from config files."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path.home() / ".docker" / "config.json"
        self._config_cache: Optional[dict] = None
        self._config_mtime: Optional[float] = None

    def get_credentials(self, registry: str) -> Optional[Tuple[str, str]]:
        """
        Get credentials for registry from Docker config.

        Returns: (username, password) or None if not found
        """
        config = self._load_config()
        if not config:
            return None

        auths = config.get("auths", {})
        auth_entry = None
        for key in self._candidate_keys(registry):
            if key in auths:
                auth_entry = auths[key]
                break
        if not auth_entry:
            return None

        # Handle base64 encoded auth field
        if auth_entry.get("auth"):
            try:
                decoded = base64.b64decode(auth_entry["auth"]).decode()
            except (ValueError, UnicodeDecodeError) as e:
                logger.debug(f"Ignoring undecodable auth entry for {registry}: {e}")
            else:
                if ":" in decoded:
                    username, password = decoded.split(":", 1)
                    return username, password

        # Handle username/password fields
        if "username" in auth_entry and "password" in auth_entry:
            return auth_entry["username"], auth_entry["password"]

        return None

    @staticmethod
    def _candidate_keys(registry: str) -> List[str]:
        if registry in DOCKER_HUB_AUTH_KEYS:
            return list(DOCKER_HUB_AUTH_KEYS)
        return [registry, f"https://{registry}", f"http://{registry}"]

    def _load_config(self) -> Optional[dict]:
        """Load Docker config with caching and mtime checking."""
        if not self.config_path.exists():
            return None

        try:
            current_mtime = self.config_path.stat().st_mtime

            # Use cached version if file hasn't changed
            if (self._config_cache is not None and
                    self._config_mtime is not None and
                    current_mtime == self._config_mtime):
                return self._config_cache

            with open(self.config_path, "r") as f:
                config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Cannot read Docker config {self.config_path}: {e}")
            return None

        self._config_cache = config
        self._config_mtime = current_mtime
        return config


def _error_detail(response: httpx.Response) -> Tuple[List[str], str]:
    """Extract registry error codes and a message from an error body."""
    try:
        body = response.json()
    except ValueError:
        return [], ""
    if not isinstance(body, dict):
        return [], ""
    errors = body.get("errors") or []
    codes = [str(e.get("code", "")) for e in errors if isinstance(e, dict)]
    messages = [str(e.get("message", "")) for e in errors if isinstance(e, dict) and e.get("message")]
    return codes, "; ".join(messages)


def _iter_body(response: httpx.Response, what: str) -> Iterator[bytes]:
    try:
        yield from response.iter_bytes(CHUNK_SIZE)
    except httpx.HTTPError as e:
        raise OciError(f"Network error reading {what}: {e}") from e


class RegistryHTTP:
    """
    HTTP client for OCI Distribution API operations.

    One instance talks to one registry host. Tokens are cached per
    service/scope for the lifetime of the client.
    """

    def __init__(self, registry: str, *, api_host: Optional[str] = None,
                 auth: Optional[DockerAuth] = None,
                 credentials: Optional[Tuple[str, str]] = None,
                 insecure: bool = False,
                 timeout: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize registry HTTP client.

        Args:
            registry: Registry name as written in references ("docker.io",
                "localhost:5000"); used for credential lookup
            api_host: Host serving the v2 API (defaults to registry)
            auth: Docker auth handler (defaults to standard Docker config)
            credentials: Explicit (username, password), preferred over auth
            insecure: Use plain HTTP and skip TLS verification
            timeout: HTTP timeout in seconds, None disables timeouts
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.registry = registry
        self.api_host = api_host or registry
        self.auth = auth or DockerAuth()
        self.credentials = credentials
        self.insecure = insecure

        scheme = "http" if insecure else "https"
        self.base_url = f"{scheme}://{self.api_host}"

        self.client = httpx.Client(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            verify=not insecure,
            headers={"User-Agent": f"cnb-sbom/{__version__}"},
            transport=transport,
        )

        # Token cache: {service:scope: (token, expiry_timestamp)}
        self._token_cache: Dict[str, Tuple[str, float]] = {}
        self._authorization: Optional[str] = None

    # Manifests

    def get_manifest(self, repo: str, ref: str,
                     accept: Sequence[str] = ACCEPTED_MANIFEST_TYPES) -> FetchedManifest:
        what = f"manifest {repo}:{ref}"
        response = self._send("GET", f"/v2/{repo}/manifests/{ref}",
                              headers={"Accept": ", ".join(accept)})
        self._check(response, what)

        payload = response.content
        media_type = response.headers.get("Content-Type", "").split(";", 1)[0].strip()
        if media_type not in accept:
            # Some registries answer with a generic content type; trust the payload
            try:
                media_type = json.loads(payload).get("mediaType") or media_type
            except (ValueError, AttributeError) as e:
                raise OciUnsupportedMediaType(f"Invalid JSON in {what}: {e}") from e
        if media_type not in accept:
            raise OciUnsupportedMediaType(
                f"Unsupported manifest media type: {media_type or '<none>'}. "
                f"Expected one of: {', '.join(accept)}"
            )

        digest = sha256_digest(payload)
        if ref.startswith("sha256:") and ref != digest:
            raise OciDigestMismatch(f"Manifest digest mismatch for {repo}@{ref}", expected=ref, actual=digest)
        server_digest = response.headers.get("Docker-Content-Digest")
        if server_digest and server_digest != digest:
            raise OciDigestMismatch(
                f"Registry reported digest {server_digest} for {what}, content hashes to {digest}",
                expected=server_digest, actual=digest,
            )

        logger.debug(f"Fetched {what}: {media_type} {digest}")
        return FetchedManifest(payload=payload, media_type=media_type, digest=digest)

    def put_manifest(self, repo: str, ref: str, media_type: str, payload: bytes) -> str:
        what = f"manifest {repo}:{ref}"
        response = self._send("PUT", f"/v2/{repo}/manifests/{ref}",
                              headers={"Content-Type": media_type}, content=payload)
        self._check(response, what)

        digest = sha256_digest(payload)
        server_digest = response.headers.get("Docker-Content-Digest")
        if server_digest and server_digest != digest:
            raise OciDigestMismatch(
                f"Registry stored {what} as {server_digest}, expected {digest}",
                expected=digest, actual=server_digest,
            )
        logger.debug(f"Pushed {what}: {digest}")
        return digest

    # Blobs

    def get_blob(self, repo: str, digest: str) -> bytes:
        what = f"blob {repo}@{digest}"
        response = self._send("GET", f"/v2/{repo}/blobs/{digest}")
        self._check(response, what)
        content = response.content
        actual = sha256_digest(content)
        if actual != digest:
            raise OciDigestMismatch(f"Content of {what} hashes to {actual}", expected=digest, actual=actual)
        return content

    @contextmanager
    def open_blob(self, repo: str, digest: str) -> Iterator[BinaryIO]:
        what = f"blob {repo}@{digest}"
        response = self._send("GET", f"/v2/{repo}/blobs/{digest}", stream=True)
        try:
            self._check(response, what)
            logger.debug(f"Streaming {what} ({response.headers.get('Content-Length', '?')} bytes)")
            yield IterStream(_iter_body(response, what))
        finally:
            response.close()

    def blob_exists(self, repo: str, digest: str) -> bool:
        response = self._send("HEAD", f"/v2/{repo}/blobs/{digest}")
        if response.status_code == 404:
            return False
        self._check(response, f"blob {repo}@{digest}")
        return True

    def put_blob(self, repo: str, digest: str, chunks: Iterable[bytes]) -> None:
        """
        Upload a blob: POST to open a session, one streaming PATCH, then
        PUT ?digest= to commit.
        """
        what = f"blob {repo}@{digest}"
        response = self._send("POST", f"/v2/{repo}/blobs/uploads/")
        self._check(response, f"upload session for {what}")
        location = self._upload_location(response, what)

        response = self._send("PATCH", location,
                              headers={"Content-Type": "application/octet-stream"},
                              content=iter(chunks))
        self._check(response, what)
        location = self._upload_location(response, what)

        # The upload URL may already carry session state in its query
        commit_url = str(httpx.URL(location).copy_add_param("digest", digest))
        response = self._send("PUT", commit_url, content=b"")
        self._check(response, what)
        logger.debug(f"Uploaded {what}")

    # Transport

    def _upload_location(self, response: httpx.Response, what: str) -> str:
        location = response.headers.get("Location")
        if not location:
            raise OciError(f"Registry did not return an upload location for {what}")
        return urljoin(str(response.url), location)

    def _send(self, method: str, path: str, *, headers: Optional[dict] = None,
              content=None, stream: bool = False) -> httpx.Response:
        """
        Make an HTTP request, answering one 401 challenge.

        Streaming request bodies cannot be replayed; they rely on an earlier
        request (the upload POST) having obtained a token with push scope.
        """
        url = urljoin(self.base_url, path)
        replayable = content is None or isinstance(content, bytes)

        response = self._dispatch(method, url, headers, content, stream)
        if response.status_code == 401 and replayable and self._authenticate(response):
            response.close()
            response = self._dispatch(method, url, headers, content, stream)
        return response

    def _dispatch(self, method: str, url: str, headers: Optional[dict],
                  content, stream: bool) -> httpx.Response:
        request_headers = dict(headers or {})
        if self._authorization:
            request_headers["Authorization"] = self._authorization
        request = self.client.build_request(method, url, headers=request_headers, content=content)
        logger.debug(f"{method} {request.url}")
        try:
            return self.client.send(request, stream=stream)
        except httpx.HTTPError as e:
            raise OciError(f"Network error: {method} {url}: {e}") from e

    def _check(self, response: httpx.Response, what: str) -> None:
        """Map an error response onto the OciError taxonomy."""
        if response.is_success:
            return
        response.read()
        code = response.status_code
        error_codes, message = _error_detail(response)
        detail = f": {message}" if message else ""

        if code in (401, 403):
            raise OciAuthError(f"Authentication failed for {what}: HTTP {code}{detail}")
        if code == 404:
            raise OciNotFound(f"Not found: {what}{detail}")
        if "DIGEST_INVALID" in error_codes:
            raise OciDigestMismatch(f"Registry rejected digest for {what}{detail}")
        if "MANIFEST_INVALID" in error_codes and code == 415:
            raise OciUnsupportedMediaType(f"Registry rejected media type for {what}{detail}")
        raise OciError(f"Registry error for {what}: HTTP {code}{detail}")

    def _get_credentials(self) -> Optional[Tuple[str, str]]:
        if self.credentials:
            return self.credentials
        return self.auth.get_credentials(self.registry)

    def _authenticate(self, response: httpx.Response) -> bool:
        """
        Answer a 401 challenge by setting the Authorization header.

        Returns:
            True if the request should be replayed
        """
        challenge = response.headers.get("WWW-Authenticate", "")
        scheme, _, params = challenge.partition(" ")
        scheme = scheme.lower()

        if scheme == "bearer":
            token = self._handle_bearer_auth(params)
            self._authorization = f"Bearer {token}"
            return True

        if scheme == "basic":
            creds = self._get_credentials()
            if not creds:
                return False
            encoded = base64.b64encode(f"{creds[0]}:{creds[1]}".encode()).decode()
            self._authorization = f"Basic {encoded}"
            return True

        logger.debug(f"Unsupported auth challenge from {self.api_host}: {challenge!r}")
        return False

    def _handle_bearer_auth(self, params: str) -> str:
        """
        Handle Bearer token authentication flow.

        Parses the challenge parameters and exchanges credentials (or
        nothing, for anonymous pulls) for a token.

        Raises:
            OciAuthError: If the challenge is malformed or the exchange fails
        """
        # Format: realm="...",service="...",scope="..."
        bearer_params = dict(re.findall(r'(\w+)="([^"]*)"', params))

        realm = bearer_params.get("realm")
        service = bearer_params.get("service")
        scope = bearer_params.get("scope")
        if not realm:
            raise OciAuthError(f"Malformed Bearer challenge from {self.api_host}")

        cache_key = f"{service or ''}:{scope or ''}"
        if cache_key in self._token_cache:
            token, expiry = self._token_cache[cache_key]
            if time.time() < expiry - TOKEN_EXPIRY_MARGIN_S:
                return token

        query = {}
        if service:
            query["service"] = service
        if scope:
            query["scope"] = scope

        creds = self._get_credentials()
        logger.debug(f"Requesting token from {realm} for scope {scope!r} "
                     f"({'authenticated' if creds else 'anonymous'})")
        try:
            auth_response = self.client.get(realm, params=query, auth=creds)
        except httpx.HTTPError as e:
            raise OciAuthError(f"Token request to {realm} failed: {e}") from e
        if not auth_response.is_success:
            raise OciAuthError(f"Token request to {realm} failed: HTTP {auth_response.status_code}")

        try:
            token_data = auth_response.json()
        except ValueError as e:
            raise OciAuthError(f"Token response from {realm} is not JSON: {e}") from e
        token = token_data.get("token") or token_data.get("access_token")
        if not token:
            raise OciAuthError(f"Token response from {realm} has no token")

        # Cache with expiry (default 60s, the minimum registries hand out)
        expires_in = token_data.get("expires_in", 60)
        self._token_cache[cache_key] = (token, time.time() + expires_in)
        return token

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


__all__ = ["DockerAuth", "RegistryHTTP"]
