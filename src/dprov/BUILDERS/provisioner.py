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
The provisioner: turns a BuildSpec into an image by pulling the base image,
upgrading every installed package, then installing the listed packages.
"""
import shlex
import time
import uuid
from typing import Dict, List, Optional, Tuple

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..CONFIG.settings import Settings
from ..errors import EngineCommandError, NetworkError, ProvisionError, RecipeError, StepFailedError
from ..MODELS.build_result import BuildResult, BuildStep, StepResult, VerificationReport
from ..MODELS.build_spec import BuildSpec
from ..MODELS.package_manager import PackageManager
from ..REGISTRY.registry_client import RegistryClient
from ..RUNNERS.engine import ContainerEngine
from .failure_classifier import classify


def render_script(commands: List[List[str]]) -> str:
    """Joins argv commands into one ``&&`` chained shell script."""
    return " && ".join(shlex.join(c) for c in commands)


class Provisioner:
    """
    Runs the linear pull -> upgrade -> install pipeline against a container engine.
    """

    def __init__(self, engine: ContainerEngine, settings: Optional[Settings] = None,
                 registry: Optional[RegistryClient] = None):
        """
        Initializes the Provisioner.

        :param engine: Engine used to pull, run and commit images.
        :param settings: Retry, preflight and cleanup settings.
        :param registry: Registry client for preflight checks.
        """
        self.engine = engine
        self.settings = settings or Settings()
        self.registry = registry or RegistryClient()

    def package_manager(self, spec: BuildSpec) -> PackageManager:
        """
        Returns the package manager for a spec.

        :raises RecipeError: If none is declared and none can be inferred from the base image.
        """
        manager = spec.resolve_package_manager()
        if manager is None:
            raise RecipeError(
                f"cannot infer the package manager of {spec.base_image}; declare one explicitly"
            )
        return manager

    def plan(self, spec: BuildSpec) -> List[BuildStep]:
        """
        Lists the steps a build of ``spec`` runs, in order.

        :param spec: The build specification.
        :return: ``pull``, then ``upgrade`` if requested, then ``install`` if there are packages.
        """
        steps = [BuildStep(name="pull", command=["pull", spec.base_image])]
        if not spec.upgrade and not spec.packages:
            return steps

        manager = self.package_manager(spec)
        if spec.upgrade:
            steps.append(BuildStep(
                name="upgrade",
                command=["sh", "-c", render_script(manager.upgrade_commands)],
                environment=manager.environment,
            ))
        if spec.packages:
            commands = manager.install_commands(spec.packages, refreshed=spec.upgrade)
            steps.append(BuildStep(
                name="install",
                command=["sh", "-c", render_script(commands)],
                environment=manager.environment,
            ))
        return steps

    def preflight(self, spec: BuildSpec) -> Dict[str, str]:
        """
        Checks that the base image exists in its registry without pulling it.

        :raises ImagePullError: If the registry does not serve the image.
        :raises NetworkError: If the registry cannot be reached.
        """
        return self.registry.check_manifest(spec.base_image)

    def build(self, spec: BuildSpec, tag: Optional[str] = None) -> BuildResult:
        """
        Builds an image from ``spec``.

        Any failure aborts the build; images created by earlier steps of this
        build are removed, so a failed build leaves no image behind.

        :param spec: The build specification.
        :param tag: Tag for the resulting image.
        :return: The build result with one StepResult per step.
        """
        steps = self.plan(spec)
        if self.settings.preflight:
            print(f"[preflight] Checking {spec.base_image}")
            self.preflight(spec)

        image = spec.base_image
        created: List[str] = []
        results: List[StepResult] = []

        try:
            for index, step in enumerate(steps):
                final = index == len(steps) - 1
                print(f"[{step.name}] Step {index + 1}/{len(steps)}: {' '.join(step.command)}")
                started = time.monotonic()
                image, attempts = self._execute(
                    step,
                    image,
                    tag=tag if final else None,
                    labels=spec.labels if final else None,
                )
                if step.name != "pull":
                    created.append(image)
                results.append(StepResult(
                    name=step.name,
                    command=step.command,
                    image_id=image,
                    duration=time.monotonic() - started,
                    attempts=attempts,
                ))
        except ProvisionError as e:
            print(f"[{e.step or 'build'}] Build failed: {e}")
            if not self.settings.keep_intermediate:
                for image_id in reversed(created):
                    self.engine.remove_image(image_id)
            raise

        if tag and not created:
            # Nothing was committed, the base image itself is the result
            self._tag(spec.base_image, tag)

        print(f"Built image {image}" + (f" as {tag}" if tag else ""))
        return BuildResult(image_id=image, base_image=spec.base_image, tag=tag, steps=results)

    def _execute(self, step: BuildStep, image: str, tag: Optional[str],
                 labels: Optional[Dict[str, str]]) -> Tuple[str, int]:
        """
        Runs one step, retrying network failures when retries are configured.
        """
        retrying = Retrying(
            retry=retry_if_exception_type(NetworkError),
            stop=stop_after_attempt(self.settings.retries + 1),
            wait=wait_exponential(multiplier=self.settings.retry_wait, max=60),
            before_sleep=lambda state: print(
                f"[{step.name}] Network failure, retrying (attempt {state.attempt_number + 1})"
            ),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                image_id = self._run_step(step, image, tag, labels)
        return image_id, attempt.retry_state.attempt_number

    def _run_step(self, step: BuildStep, image: str, tag: Optional[str],
                  labels: Optional[Dict[str, str]]) -> str:
        if step.name == "pull":
            try:
                self.engine.pull(image)
            except EngineCommandError as e:
                raise classify(step.name, e) from e
            return image

        container = f"dprov-{step.name}-{uuid.uuid4().hex[:12]}"
        try:
            self.engine.run(image, step.script, container, step.environment)
            return self.engine.commit(container, tag=tag, labels=labels)
        except EngineCommandError as e:
            raise classify(step.name, e) from e
        finally:
            self.engine.remove_container(container)

    def _tag(self, image: str, tag: str) -> None:
        try:
            self.engine.tag(image, tag)
        except EngineCommandError as e:
            raise StepFailedError(f"cannot tag {image} as {tag}: {e}", step="tag") from e

    def installed_packages(self, image: str, spec: BuildSpec) -> List[str]:
        """
        Lists the names of the packages installed in ``image``, sorted.

        Two builds of the same spec are equivalent when these lists match.
        """
        manager = self.package_manager(spec)
        try:
            output = self.engine.output(image, manager.list_command)
        except EngineCommandError as e:
            raise StepFailedError(f"cannot list packages in {image}: {e}", step="verify") from e
        return sorted({line.strip() for line in output.splitlines() if line.strip()})

    def verify(self, image: str, spec: BuildSpec) -> VerificationReport:
        """
        Checks that every package of ``spec`` is installed in ``image``.

        :param image: Image id or tag.
        :param spec: The spec the image was built from.
        :return: A report listing present and missing packages.
        """
        manager = self.package_manager(spec)
        report = VerificationReport(image=image)
        for package in spec.packages:
            status = self.engine.check(image, manager.query_command + [manager.package_name(package)])
            if status == 0:
                report.present.append(package)
            else:
                report.missing.append(package)
        report.installed = self.installed_packages(image, spec)
        return report
