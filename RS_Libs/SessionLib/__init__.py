"""
SessionLib - Editor session and studio solutions
"""

from RS_Libs.SessionLib.solution_registry import SolutionRegistry, get_default_registry
from RS_Libs.SessionLib.editor_session import EditorSession

__all__ = [
    "SolutionRegistry",
    "get_default_registry",
    "EditorSession",
]
