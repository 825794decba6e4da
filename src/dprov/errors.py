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
Exceptions raised while reading recipes and provisioning images.
"""
from typing import List, Optional


class ProvisionError(Exception):
    """
    Base class for every failure that aborts a build.

    Args:
        message: Human readable description.
        step: Name of the build step that failed, if any.
    """

    exit_code = 1

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step

    def __str__(self) -> str:
        return self.message


class RecipeError(ProvisionError):
    """The recipe cannot be expressed as a BuildSpec."""

    exit_code = 2


class ImagePullError(ProvisionError):
    """The base image could not be fetched."""

    exit_code = 3


class PackageResolutionError(ProvisionError):
    """One or more named packages are not available in the configured repositories."""

    exit_code = 4

    def __init__(self, message: str, step: Optional[str] = None, packages: Optional[List[str]] = None):
        super().__init__(message, step)
        self.packages = packages or []


class NetworkError(ProvisionError):
    """Transient connectivity loss while fetching images or packages."""

    exit_code = 5


class StepFailedError(ProvisionError):
    """A step failed for a reason outside the other categories."""


class EngineCommandError(Exception):
    """
    Raw failure of a container engine invocation.

    The provisioner classifies these into the ProvisionError taxonomy.
    """

    def __init__(self, args: List[str], returncode: int, stdout: str = "", stderr: str = ""):
        self.command = list(args)
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        super().__init__(f"Command {' '.join(self.command)!r} exited with status {returncode}")

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as the engine printed it."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class EngineTimeoutError(EngineCommandError):
    """An engine invocation outlived the configured step timeout."""

    def __init__(self, args: List[str], timeout: float):
        self.timeout = timeout
        super().__init__(args, -1, stderr=f"engine command timed out after {timeout}s")
