from .analyzer import AnalysisGenerator, build_prompt
from .mock import generate_mock
from .validator import validate

__all__ = ["AnalysisGenerator", "build_prompt", "generate_mock", "validate"]
