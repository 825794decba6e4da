"""
Models for the parsed recipe instruction stream.
"""
from typing import List
from pydantic import BaseModel

class Instruction(BaseModel):
    """
    Represents a single instruction in a recipe file.
    """
    instruction: str
    arguments: List[str]
    raw: str
    line: int = 0
