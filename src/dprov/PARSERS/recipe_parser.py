"""
Parsers for Dockerfile-style recipes, extracting instructions and arguments.
"""
import json
import re
from typing import List
from ..errors import RecipeError
from ..MODELS.recipe_ast import Instruction

INSTRUCTION_PATTERN = re.compile(r'^([A-Za-z]+)(?:\s+(.*))?$', re.DOTALL)

class RecipeParser:
    """
    Parser for recipe instructions.
    """
    def parse(self, recipe_path: str) -> List[Instruction]:
        """
        Parses a recipe from a file path.

        Args:
            recipe_path (str): Path to the recipe.

        Returns:
            List[Instruction]: List of parsed instructions.
        """
        with open(recipe_path, 'r') as f:
            content = f.read()
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> List[Instruction]:
        """
        Parses a recipe from a string content.

        Comment lines are dropped, including those inside a continued
        instruction, and ``\\`` continuations are joined with a space.

        Args:
            content (str): Content of the recipe.

        Returns:
            List[Instruction]: List of parsed instructions.
        """
        instructions = []
        buffer: List[str] = []
        start_line = 0

        for number, line in enumerate(content.splitlines(), start=1):
            stripped = line.strip()
            # Comments and blank lines never end a continued instruction
            if not stripped or stripped.startswith('#'):
                continue
            if not buffer:
                start_line = number

            if stripped.endswith('\\'):
                buffer.append(stripped[:-1].strip())
                continue

            buffer.append(stripped)
            instructions.append(self._build(buffer, start_line))
            buffer = []

        # A trailing continuation at end of file still closes the instruction
        if buffer:
            instructions.append(self._build(buffer, start_line))

        return instructions

    def _build(self, parts: List[str], line: int) -> Instruction:
        """
        Builds one instruction from its joined physical lines.
        """
        text = " ".join(p for p in parts if p)
        match = INSTRUCTION_PATTERN.match(text)
        if not match:
            raise RecipeError(f"line {line}: not an instruction: {text[:40]!r}")

        inst = match.group(1).upper()
        args_str = (match.group(2) or "").strip()

        # Exec form vs shell form
        if args_str.startswith('[') and args_str.endswith(']'):
            try:
                args = json.loads(args_str)
            except json.JSONDecodeError:
                # Not valid JSON, treat as shell form
                args = [args_str]
            if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
                args = [args_str]
        elif inst in ("ARG", "LABEL"):
            # KEY=VALUE pairs, possibly several per line
            args = re.findall(r'(\S+=(?:"(?:[^"\\]|\\.)*"|\'[^\']*\'|\S*)|\S+)', args_str)
        elif args_str:
            args = [args_str]
        else:
            args = []

        return Instruction(
            instruction=inst,
            arguments=args,
            raw=text,
            line=line
        )
