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
Parsers for YAML recipes and the recipe-loading entry point.

A YAML recipe looks like::

    base_image: fedora:29
    upgrade: true
    packages:
      - iproute
      - nodejs
      - git
"""
import os
import yaml
from typing import Dict, Any, List, Optional
from pydantic import ValidationError
from ..errors import RecipeError
from ..MODELS.build_spec import BuildSpec
from ..UTILS.string_interpolation import VariableInterpolator
from .recipe_parser import RecipeParser
from .spec_extractor import SpecExtractor

YAML_SUFFIXES = (".yml", ".yaml")

class YamlRecipeParser:
    """
    Parser for YAML recipe files.
    """
    def __init__(self, context: Optional[Dict[str, str]] = None):
        """
        Initializes the parser with an optional variable context for interpolation.

        :param context: A dictionary of variables for interpolation.
        """
        self.context = context if context is not None else dict(os.environ)

    def parse(self, recipe_path: str) -> BuildSpec:
        """
        Parses a recipe file from a path.

        :param recipe_path: Path to the recipe file.
        :return: Parsed build specification.
        """
        with open(recipe_path, 'r') as f:
            content = f.read()
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> BuildSpec:
        """
        Parses a recipe from a string.

        :param content: YAML content of the recipe.
        :return: Parsed build specification.
        :raises RecipeError: On interpolation, YAML or validation errors.
        """
        # Interpolate variables before parsing YAML
        try:
            content = VariableInterpolator.interpolate(content, self.context)
        except KeyError as e:
            raise RecipeError(e.args[0]) from e

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise RecipeError(f"invalid YAML recipe: {e}") from e
        if not isinstance(data, dict):
            raise RecipeError("YAML recipe must be a mapping")

        unknown = set(data) - set(BuildSpec.model_fields)
        if unknown:
            raise RecipeError(f"unknown recipe keys: {', '.join(sorted(map(str, unknown)))}")

        data = dict(data)
        data['packages'] = self._to_list(data.get('packages'))
        labels = data.pop('labels', None)
        if labels is not None:
            if not isinstance(labels, dict):
                raise RecipeError("labels must be a mapping")
            data['labels'] = {str(k): str(v) for k, v in labels.items()}

        try:
            return BuildSpec(**data)
        except ValidationError as e:
            raise RecipeError(f"invalid recipe: {e.errors()[0]['msg']}") from e

    def _to_list(self, val: Any) -> List[str]:
        """
        Helper to ensure a value is a list of strings.

        :param val: The value to convert.
        :return: A list of strings.
        """
        if val is None:
            return []
        if isinstance(val, str):
            return val.split()
        if not isinstance(val, list):
            raise RecipeError("packages must be a list or a space separated string")
        return [str(v) for v in val]


def load_recipe(path: str,
                build_args: Optional[Dict[str, str]] = None,
                context: Optional[Dict[str, str]] = None) -> BuildSpec:
    """
    Loads a BuildSpec from a Dockerfile-style or YAML recipe.

    :param path: Recipe path. ``.yml``/``.yaml`` files are read as YAML.
    :param build_args: ``ARG`` overrides for Dockerfile-style recipes.
    :param context: Interpolation context for YAML recipes (defaults to the environment).
    :raises RecipeError: If the recipe is missing or invalid.
    """
    if not os.path.isfile(path):
        raise RecipeError(f"recipe not found: {path}")

    if path.lower().endswith(YAML_SUFFIXES):
        merged = dict(context if context is not None else os.environ)
        merged.update(build_args or {})
        return YamlRecipeParser(merged).parse(path)

    instructions = RecipeParser().parse(path)
    return SpecExtractor(build_args).extract(instructions)
