"""
Converters for turning a BuildSpec into a shell script that provisions a host directly.
"""
import os
import shlex
import stat
from jinja2 import Template
from ..errors import RecipeError
from ..MODELS.build_spec import BuildSpec

SHELL_SCRIPT_TEMPLATE = """#!/bin/sh
# Provisioning script for hosts based on {{ base_image }}
set -eu
{% for key, value in environment.items() %}
export {{ key }}={{ value }}
{% endfor %}
{% if upgrade %}

echo "[upgrade] Upgrading installed packages"
{% for command in upgrade %}
{{ command }}
{% endfor %}
{% endif %}
{% if install %}

echo "[install] Installing {{ package_count }} package(s)"
{% for command in install %}
{{ command }}
{% endfor %}
{% endif %}
"""


class ShellScriptConverter:
    """
    Renders the upgrade and install steps as a POSIX shell script.
    """

    def __init__(self):
        self.template = Template(SHELL_SCRIPT_TEMPLATE, trim_blocks=True, lstrip_blocks=True,
                                 keep_trailing_newline=True)

    def render(self, spec: BuildSpec) -> str:
        """
        Renders the script for ``spec``.

        :param spec: The build specification.
        :return: Script text.
        """
        manager = spec.resolve_package_manager()
        if manager is None and (spec.upgrade or spec.packages):
            raise RecipeError(f"cannot infer the package manager of {spec.base_image}")

        upgrade, install, environment = [], [], {}
        if manager is not None:
            environment = {k: shlex.quote(v) for k, v in manager.environment.items()}
            if spec.upgrade:
                upgrade = [shlex.join(c) for c in manager.upgrade_commands]
            if spec.packages:
                install = [shlex.join(c) for c in manager.install_commands(spec.packages, refreshed=spec.upgrade)]

        return self.template.render(
            base_image=spec.base_image,
            environment=environment,
            upgrade=upgrade,
            install=install,
            package_count=len(spec.packages),
        )

    def convert(self, spec: BuildSpec, output_path: str = "provision.sh") -> str:
        """
        Writes the script to ``output_path`` and marks it executable.

        :return: The path written.
        """
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, "w") as f:
            f.write(self.render(spec))
        mode = os.stat(output_path).st_mode
        os.chmod(output_path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        print(f"Provisioning script written to {output_path}")
        return output_path
