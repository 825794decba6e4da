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
Base image reference parsing.
Parses references like 'fedora:29' or 'quay.io/centos/centos:stream9'.
"""

import re
from typing import Optional
from dataclasses import dataclass

REPOSITORY_COMPONENT = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
DIGEST_PATTERN = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[A-Fa-f0-9]{32,}$")


@dataclass
class ImageReference:
    """
    Parsed base image reference.

    Examples:
        - fedora -> docker.io/library/fedora:latest
        - fedora:29 -> docker.io/library/fedora:29
        - opensuse/leap:15.5 -> docker.io/opensuse/leap:15.5
        - localhost:5000/base:1 -> localhost:5000/base:1
    """

    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    DEFAULT_REGISTRY = "docker.io"
    DEFAULT_TAG = "latest"

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """
        Parse an image reference string.

        Args:
            reference: Image reference string (e.g., 'fedora:29')

        Returns:
            Parsed ImageReference object.

        Raises:
            ValueError: If the reference is empty or malformed.
        """
        if not reference:
            raise ValueError("Empty image reference")

        remainder, digest = reference, None
        if "@" in remainder:
            remainder, digest = remainder.rsplit("@", 1)
            if not DIGEST_PATTERN.match(digest):
                raise ValueError(f"Invalid digest in image reference: {reference!r}")

        # A colon after the last slash separates the tag; before it, a registry port
        tag = None
        name_start = remainder.rfind("/") + 1
        colon = remainder.find(":", name_start)
        if colon != -1:
            remainder, tag = remainder[:colon], remainder[colon + 1:]
            if not TAG_PATTERN.match(tag):
                raise ValueError(f"Invalid tag in image reference: {reference!r}")

        registry, repository = cls._split_registry(remainder)
        for component in repository.split("/"):
            if not REPOSITORY_COMPONENT.match(component):
                raise ValueError(f"Invalid repository name in image reference: {reference!r}")

        if not tag and not digest:
            tag = cls.DEFAULT_TAG

        return cls(registry=registry, repository=repository, tag=tag, digest=digest)

    @classmethod
    def _split_registry(cls, name: str):
        parts = name.split("/")
        first = parts[0]
        if len(parts) > 1 and ("." in first or ":" in first or first == "localhost"):
            return first, "/".join(parts[1:])
        if len(parts) == 1:
            # Official images live under library/
            return cls.DEFAULT_REGISTRY, f"library/{first}"
        return cls.DEFAULT_REGISTRY, name

    @property
    def reference(self) -> str:
        """Tag or digest used to address the manifest."""
        return self.digest or self.tag or self.DEFAULT_TAG

    @property
    def full_name(self) -> str:
        """Get full image name with registry."""
        name = f"{self.registry}/{self.repository}"
        if self.digest:
            return f"{name}@{self.digest}"
        return f"{name}:{self.tag}" if self.tag else name

    @property
    def short_name(self) -> str:
        """Get short image name (without registry if default)."""
        if self.registry != self.DEFAULT_REGISTRY:
            return self.full_name
        repo = self.repository
        if repo.startswith("library/"):
            repo = repo[len("library/"):]
        if self.digest:
            return f"{repo}@{self.digest}"
        return f"{repo}:{self.tag}" if self.tag else repo

    @property
    def registry_url(self) -> str:
        """Get the registry URL for API calls."""
        if self.registry == self.DEFAULT_REGISTRY:
            return "https://registry-1.docker.io"
        if self.registry.startswith("localhost"):
            return f"http://{self.registry}"
        return f"https://{self.registry}"

    @property
    def manifest_url(self) -> str:
        """URL of the manifest for this reference (Registry HTTP API v2)."""
        return f"{self.registry_url}/v2/{self.repository}/manifests/{self.reference}"

    def __str__(self) -> str:
        return self.short_name

    def __repr__(self) -> str:
        return f"ImageReference({self.full_name})"
