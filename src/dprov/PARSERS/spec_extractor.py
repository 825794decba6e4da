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
Translation of a parsed recipe into a BuildSpec.

Only the instructions a provisioning recipe needs are accepted: ``ARG``,
a single ``FROM``, ``LABEL`` and ``RUN`` lines made of package manager
upgrade, refresh and install commands chained with ``&&`` or ``;``.
"""
import json
import re
import shlex
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..errors import RecipeError
from ..MODELS.build_spec import BuildSpec
from ..MODELS.package_manager import PackageManager, get_package_manager
from ..MODELS.recipe_ast import Instruction
from ..UTILS.string_interpolation import VariableInterpolator

SEPARATORS = {"&&", ";"}
ASSIGNMENT = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*=')


class SpecExtractor:
    """
    Builds a BuildSpec from recipe instructions.
    """

    def __init__(self, build_args: Optional[Dict[str, str]] = None):
        """
        :param build_args: Values overriding ``ARG`` defaults.
        """
        self.build_args = dict(build_args or {})

    def extract(self, instructions: List[Instruction]) -> BuildSpec:
        """
        Extracts the build specification from a list of instructions.

        :param instructions: Instructions in file order.
        :return: The BuildSpec described by the recipe.
        :raises RecipeError: If the recipe uses anything a BuildSpec cannot express.
        """
        context: Dict[str, str] = {}
        base_image: Optional[str] = None
        manager: Optional[PackageManager] = None
        upgrade = False
        packages: List[str] = []
        labels: Dict[str, str] = {}

        for inst in instructions:
            cmd = inst.instruction

            if cmd == "ARG":
                self._declare_args(inst, context)
            elif cmd == "FROM":
                if base_image is not None:
                    raise RecipeError(f"line {inst.line}: multi-stage recipes are not supported")
                base_image = self._parse_from(inst, context)
            elif base_image is None:
                raise RecipeError(f"line {inst.line}: {cmd} before FROM")
            elif cmd == "LABEL":
                for arg in inst.arguments:
                    if '=' not in arg:
                        raise RecipeError(f"line {inst.line}: LABEL expects key=value, got {arg!r}")
                    key, value = arg.split('=', 1)
                    labels[self._unquote(key)] = self._unquote(value)
            elif cmd == "RUN":
                for tokens in self._commands(inst, context):
                    manager, upgrade = self._apply(inst, tokens, manager, upgrade, packages)
            else:
                raise RecipeError(f"line {inst.line}: unsupported instruction {cmd}")

        if base_image is None:
            raise RecipeError("recipe has no FROM instruction")

        try:
            spec = BuildSpec(base_image=base_image, packages=packages, upgrade=upgrade, labels=labels)
            inferred = spec.resolve_package_manager()
            # Only recorded when the base image does not already imply it
            if manager and (inferred is None or inferred.name != manager.name):
                spec = BuildSpec(**dict(spec.model_dump(), package_manager=manager.name))
            return spec
        except ValidationError as e:
            raise RecipeError(f"invalid recipe: {e.errors()[0]['msg']}") from e

    def _declare_args(self, inst: Instruction, context: Dict[str, str]) -> None:
        for arg in inst.arguments:
            name, sep, default = arg.partition('=')
            if name in self.build_args:
                context[name] = self.build_args[name]
            elif sep:
                context[name] = self._unquote(default)

    def _parse_from(self, inst: Instruction, context: Dict[str, str]) -> str:
        if len(inst.arguments) != 1:
            raise RecipeError(f"line {inst.line}: FROM expects a single image reference")
        words = self._interpolate(inst, inst.arguments[0], context).split()
        if not words:
            raise RecipeError(f"line {inst.line}: FROM expects a single image reference")
        if len(words) != 1 or words[0].startswith("--"):
            raise RecipeError(f"line {inst.line}: FROM options and named stages are not supported")
        return words[0]

    def _commands(self, inst: Instruction, context: Dict[str, str]) -> List[List[str]]:
        """
        Splits a RUN instruction into individual commands.
        """
        if len(inst.arguments) > 1:
            # Exec form: a single command, no shell
            return [[self._interpolate(inst, a, context) for a in inst.arguments]]
        if not inst.arguments:
            raise RecipeError(f"line {inst.line}: empty RUN instruction")

        body = self._interpolate(inst, inst.arguments[0], context)
        lexer = shlex.shlex(body, posix=True, punctuation_chars=True)
        lexer.whitespace_split = True
        try:
            tokens = list(lexer)
        except ValueError as e:
            raise RecipeError(f"line {inst.line}: {e}") from e

        commands: List[List[str]] = [[]]
        for token in tokens:
            if token in SEPARATORS:
                commands.append([])
            elif token and all(c in "();<>|&" for c in token):
                raise RecipeError(f"line {inst.line}: shell operator {token!r} is not supported")
            else:
                commands[-1].append(token)
        return [c for c in commands if c]

    def _apply(self, inst: Instruction, tokens: List[str], manager: Optional[PackageManager],
               upgrade: bool, packages: List[str]):
        """
        Folds one package manager command into the spec being built.
        """
        # Leading VAR=value assignments, e.g. DEBIAN_FRONTEND=noninteractive
        while tokens and ASSIGNMENT.match(tokens[0]):
            tokens = tokens[1:]
        if not tokens:
            raise RecipeError(f"line {inst.line}: empty command")

        try:
            current = get_package_manager(tokens[0])
        except KeyError:
            raise RecipeError(f"line {inst.line}: unsupported command {shlex.join(tokens)!r}")
        if manager is not None and manager.name != current.name:
            raise RecipeError(
                f"line {inst.line}: recipe mixes package managers {manager.name} and {current.name}"
            )

        operands = self._operands(current, tokens[1:])
        if not operands:
            raise RecipeError(f"line {inst.line}: {tokens[0]} command has no subcommand")
        verb, operands = operands[0], operands[1:]

        if verb in current.upgrade_verbs:
            if operands:
                raise RecipeError(f"line {inst.line}: upgrading selected packages is not supported")
            if packages:
                raise RecipeError(f"line {inst.line}: upgrade must come before any install")
            upgrade = True
        elif verb in current.install_verbs:
            if not operands:
                raise RecipeError(f"line {inst.line}: install without packages")
            packages.extend(operands)
        elif verb in current.refresh_verbs:
            # Repository refreshes are part of the upgrade and install steps
            pass
        else:
            raise RecipeError(f"line {inst.line}: unsupported {tokens[0]} subcommand {verb!r}")

        return current, upgrade

    def _operands(self, manager: PackageManager, args: List[str]) -> List[str]:
        """
        Drops option flags (and the values of options that take one).
        """
        operands = []
        skip = False
        for arg in args:
            if skip:
                skip = False
                continue
            if arg.startswith("-"):
                skip = arg in manager.valued_options
                continue
            operands.append(arg)
        return operands

    def _interpolate(self, inst: Instruction, text: str, context: Dict[str, str]) -> str:
        try:
            return VariableInterpolator.interpolate(text, context)
        except KeyError as e:
            raise RecipeError(f"line {inst.line}: {e.args[0]}") from e

    @staticmethod
    def _unquote(value: str) -> str:
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            if value[0] == '"':
                # Double quoted values carry JSON escapes, as rendered
                try:
                    return json.loads(value)
                except ValueError:
                    # Not valid JSON, keep the quoted text as written
                    return value[1:-1]
            return value[1:-1]
        return value
