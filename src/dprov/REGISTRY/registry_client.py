# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Registry client used to check that a base image exists before building.
Implements the manifest lookup of the Docker Registry HTTP API V2.
"""

import base64
import json
import re
import socket
from typing import Optional, Dict, Any
from dataclasses import dataclass
from urllib.request import urlopen, Request
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode

from ..errors import ImagePullError, NetworkError
from .image_reference import ImageReference

MANIFEST_MEDIA_TYPES = ", ".join(
    [
        "application/vnd.docker.distribution.manifest.v2+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.oci.image.index.v1+json",
    ]
)

CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


@dataclass
class RegistryAuth:
    """Authentication credentials for a registry."""

    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def basic(self) -> str:
        encoded = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
        return f"Basic {encoded}"


class RegistryClient:
    """
    Minimal client for Docker Hub and OCI-compatible registries.
    """

    def __init__(self, timeout: float = 30):
        """
        Initialize the registry client.

        Args:
            timeout: Seconds allowed for each HTTP request.
        """
        self.timeout = timeout
        self._auth_tokens: Dict[str, str] = {}
        self._credentials: Dict[str, RegistryAuth] = {}

    def set_credentials(self, registry: str, username: str, password: str) -> None:
        """
        Set credentials for a registry.

        Args:
            registry: Registry hostname (e.g., 'docker.io')
            username: Username
            password: Password or access token
        """
        self._credentials[registry] = RegistryAuth(username=username, password=password)

    def _fetch_token(self, ref: ImageReference, challenge: str) -> Optional[str]:
        """Exchange a ``WWW-Authenticate: Bearer`` challenge for a token."""
        if not challenge.lower().startswith("bearer"):
            creds = self._credentials.get(ref.registry)
            return creds.basic if creds else None

        params = dict(CHALLENGE_PARAM.findall(challenge))
        realm = params.pop("realm", None)
        if not realm:
            return None
        params.setdefault("scope", f"repository:{ref.repository}:pull")

        request = Request(f"{realm}?{urlencode(params)}")
        creds = self._credentials.get(ref.registry)
        if creds:
            request.add_header("Authorization", creds.basic)

        with urlopen(request, timeout=self.timeout) as response:
            body = response.read()
        try:
            data = json.loads(body.decode())
        except ValueError as e:
            raise ImagePullError(f"{ref.short_name}: invalid token response from {realm}", step="pull") from e
        if not isinstance(data, dict):
            raise ImagePullError(f"{ref.short_name}: invalid token response from {realm}", step="pull")
        token = data.get("token") or data.get("access_token")
        return f"Bearer {token}" if token else None

    def _send_head(self, ref: ImageReference, cache_key: str) -> Dict[str, str]:
        request = Request(ref.manifest_url, method="HEAD")
        request.add_header("Accept", MANIFEST_MEDIA_TYPES)
        token = self._auth_tokens.get(cache_key)
        if token:
            request.add_header("Authorization", token)
        with urlopen(request, timeout=self.timeout) as response:
            return dict(response.headers)

    def _head_manifest(self, ref: ImageReference) -> Dict[str, str]:
        """Request the manifest headers, authenticating once on a 401 challenge."""
        cache_key = f"{ref.registry}/{ref.repository}"

        try:
            return self._send_head(ref, cache_key)
        except HTTPError as e:
            challenge = e.headers.get("WWW-Authenticate", "") if e.headers else ""
            if e.code != 401 or not challenge:
                raise
            token = self._fetch_token(ref, challenge)
            if not token:
                raise
            self._auth_tokens[cache_key] = token

        return self._send_head(ref, cache_key)

    def check_manifest(self, image_name: str) -> Dict[str, Any]:
        """
        Check that an image manifest exists without pulling any layer.

        Args:
            image_name: Image name (e.g., 'fedora:29')

        Returns:
            Dictionary with the reference, digest and media type.

        Raises:
            ImagePullError: The registry does not serve this image.
            NetworkError: The registry could not be reached.
        """
        ref = ImageReference.parse(image_name)
        print(f"[registry] Checking {ref.full_name}")

        try:
            headers = self._head_manifest(ref)
        except HTTPError as e:
            if e.code >= 500 or e.code == 429:
                raise NetworkError(f"registry error {e.code} for {ref.short_name}", step="pull") from e
            if e.code in (401, 403):
                raise ImagePullError(
                    f"{ref.short_name}: repository does not exist or requires authentication", step="pull"
                ) from e
            raise ImagePullError(f"{ref.short_name}: manifest unknown ({e.code})", step="pull") from e
        except (URLError, socket.timeout, ConnectionError) as e:
            reason = getattr(e, "reason", e)
            raise NetworkError(f"cannot reach {ref.registry}: {reason}", step="pull") from e

        headers = {k.lower(): v for k, v in headers.items()}
        return {
            "reference": ref.full_name,
            "digest": headers.get("docker-content-digest"),
            "media_type": headers.get("content-type"),
        }
