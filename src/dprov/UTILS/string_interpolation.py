"""
Utilities for substituting build arguments and environment variables in recipes.
"""
import re
from typing import Dict

class VariableInterpolator:
    """
    Utility for interpolating variables in strings.
    Supports ${VAR}, ${VAR:-default}, ${VAR:+value} and bare $VAR.
    """
    # Group 1: braced name, group 2: '-' or '+', group 3: alternate value, group 4: bare name
    PATTERN = re.compile(r'\$\{([^}:]+)(?::(-|\+)([^}]*))?\}|\$([A-Za-z_][A-Za-z0-9_]*)')

    @classmethod
    def interpolate(cls, template: str, context: Dict[str, str]) -> str:
        """
        Interpolates variables in the template string using the provided context.

        A bare ``$VAR`` that is not in the context is left untouched so the
        text can still be handed to a shell.

        :param template: The string containing placeholders.
        :param context: The variables context.
        :return: The interpolated string.
        :raises KeyError: If a braced variable is not found and no default is provided.
        """
        def replace(match):
            bare_name = match.group(4)
            if bare_name is not None:
                return context.get(bare_name, match.group(0))

            var_name = match.group(1)
            modifier = match.group(2)
            alt_value = match.group(3)
            value = context.get(var_name)

            if modifier == '-':
                return value if value else alt_value
            if modifier == '+':
                return alt_value if value else ''
            if value is None:
                raise KeyError(f"Variable {var_name} not found in context")
            return value

        return cls.PATTERN.sub(replace, template)
