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
Converters for rendering a BuildSpec back into a Dockerfile-style recipe.
"""
import json
import os
import shlex
from typing import List
from jinja2 import Template
from ..errors import RecipeError
from ..MODELS.build_spec import BuildSpec

CONTAINERFILE_TEMPLATE = """FROM {{ base_image }}
{% for key, value in labels %}
LABEL {{ key }}={{ value }}
{% endfor %}
{% if run_lines %}

{{ run_lines | join(separator) }}
{% endif %}
"""


class ContainerfileConverter:
    """
    Renders a BuildSpec as a single-RUN recipe: the upgrade commands, then
    the install command with one package per continued line.
    """

    def __init__(self):
        self.template = Template(CONTAINERFILE_TEMPLATE, trim_blocks=True, lstrip_blocks=True,
                                 keep_trailing_newline=True)

    def _run_lines(self, spec: BuildSpec) -> List[str]:
        if not spec.upgrade and not spec.packages:
            return []
        manager = spec.resolve_package_manager()
        if manager is None:
            raise RecipeError(f"cannot infer the package manager of {spec.base_image}")

        commands = list(manager.upgrade_commands) if spec.upgrade else []
        if spec.packages:
            commands += manager.install_commands(spec.packages, refreshed=spec.upgrade)

        lines: List[str] = []
        for command in commands:
            packages = []
            if spec.packages and command[-len(spec.packages):] == list(spec.packages):
                command, packages = command[:-len(spec.packages)], spec.packages
            lines.append(("    " if lines else "RUN ") + shlex.join(command))
            lines.extend("        " + shlex.quote(p) for p in packages)
            lines.append("    &&")
        return lines[:-1]

    def render(self, spec: BuildSpec) -> str:
        """
        Renders the recipe text for ``spec``.

        :param spec: The build specification.
        :return: Recipe text; parsing it yields an equal BuildSpec.
        """
        return self.template.render(
            base_image=spec.base_image,
            labels=[(key, json.dumps(value, ensure_ascii=False)) for key, value in spec.labels.items()],
            run_lines=self._run_lines(spec),
            separator=" \\\n",
        )

    def convert(self, spec: BuildSpec, output_path: str = "Containerfile") -> str:
        """
        Writes the rendered recipe to ``output_path``.

        :return: The path written.
        """
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, "w") as f:
            f.write(self.render(spec))

        print(f"Recipe written to {output_path}")
        return output_path
