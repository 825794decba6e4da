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
Execution of container engine commands (docker, podman or compatible).
"""
import json
import shutil
import subprocess
from typing import Dict, List, Optional

from ..errors import EngineCommandError, EngineTimeoutError, ProvisionError

ENGINE_CANDIDATES = ("podman", "docker")

class ContainerEngine:
    """
    Drives a docker-compatible command line to pull, run and commit images.
    """
    def __init__(self, executable: str = "docker", timeout: Optional[float] = None, verbose: bool = True):
        """
        Initializes the engine wrapper.

        Args:
            executable (str): Engine command, e.g. ``docker`` or ``podman``.
            timeout (Optional[float]): Seconds allowed for each engine call.
            verbose (bool): Print each command before running it.
        """
        self.executable = executable
        self.timeout = timeout
        self.verbose = verbose

    @staticmethod
    def detect(preferred: str = "auto") -> str:
        """
        Resolves the engine executable.

        Args:
            preferred (str): ``auto`` or an explicit executable name.

        Returns:
            str: The executable to use.
        """
        if preferred != "auto":
            return preferred
        for candidate in ENGINE_CANDIDATES:
            if shutil.which(candidate):
                return candidate
        raise ProvisionError("no container engine found (tried: " + ", ".join(ENGINE_CANDIDATES) + ")")

    def _run(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        """
        Runs one engine command and captures its output.

        Raises:
            EngineCommandError: If ``check`` is set and the command fails.
        """
        command = [self.executable] + list(args)
        if self.verbose:
            print(f"[engine] $ {' '.join(command)}")

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                # Arguments are never handed to a host shell
                shell=False
            )
        except FileNotFoundError:
            raise ProvisionError(f"container engine {self.executable!r} not found")
        except subprocess.TimeoutExpired:
            raise EngineTimeoutError(command, self.timeout)

        if check and result.returncode != 0:
            raise EngineCommandError(command, result.returncode, result.stdout, result.stderr)
        return result

    def pull(self, image: str) -> None:
        """Pulls an image from its registry."""
        self._run(["pull", image])

    def run(self, image: str, script: str, name: str, environment: Optional[Dict[str, str]] = None) -> str:
        """
        Runs a shell script in a new named container and waits for it to exit.

        The container is kept so it can be committed.

        Returns:
            str: The container name.
        """
        args = ["run", "--name", name]
        for key, value in (environment or {}).items():
            args += ["-e", f"{key}={value}"]
        args += [image, "sh", "-c", script]
        self._run(args)
        return name

    def commit(self, container: str, tag: Optional[str] = None, labels: Optional[Dict[str, str]] = None) -> str:
        """
        Commits a container's filesystem as a new image.

        Returns:
            str: The new image id.
        """
        args = ["commit"]
        for key, value in (labels or {}).items():
            args += ["--change", f"LABEL {key}={json.dumps(value)}"]
        args.append(container)
        if tag:
            args.append(tag)
        result = self._run(args)
        lines = result.stdout.strip().splitlines()
        return lines[-1].strip() if lines else (tag or container)

    def tag(self, image: str, tag: str) -> None:
        """Adds a tag to an existing image."""
        self._run(["tag", image, tag])

    def remove_container(self, name: str) -> None:
        """Removes a container, ignoring failures."""
        self._run(["rm", "-f", name], check=False)

    def remove_image(self, image: str) -> None:
        """Removes an image, ignoring failures."""
        self._run(["rmi", image], check=False)

    def check(self, image: str, command: List[str]) -> int:
        """
        Runs a command in a throwaway container.

        Returns:
            int: The command's exit status.
        """
        return self._run(["run", "--rm", image] + list(command), check=False).returncode

    def output(self, image: str, command: List[str]) -> str:
        """
        Runs a command in a throwaway container and returns its stdout.
        """
        return self._run(["run", "--rm", image] + list(command)).stdout
