"""
Models for build plans, build outcomes and image verification.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel

class BuildStep(BaseModel):
    """
    One step of a build plan: ``pull``, ``upgrade`` or ``install``.
    """
    name: str
    command: List[str]
    environment: Dict[str, str] = {}

    @property
    def script(self) -> str:
        """The shell script run inside the container (empty for ``pull``)."""
        if self.command[:2] == ["sh", "-c"]:
            return self.command[2]
        return ""

class StepResult(BaseModel):
    """
    Outcome of a completed step.
    """
    name: str
    command: List[str]
    image_id: str
    duration: float = 0.0
    attempts: int = 1

class BuildResult(BaseModel):
    """
    Outcome of a successful build.
    """
    image_id: str
    base_image: str
    tag: Optional[str] = None
    steps: List[StepResult] = []

class VerificationReport(BaseModel):
    """
    Which of a spec's packages are installed in an image.
    """
    image: str
    present: List[str] = []
    missing: List[str] = []
    installed: List[str] = []

    @property
    def ok(self) -> bool:
        return not self.missing
