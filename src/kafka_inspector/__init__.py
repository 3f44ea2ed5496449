"""kafka-inspector.

Public API:
    - Session: cursor navigation, search and inbound monitoring against a cluster
    - Settings: environment-driven configuration
    - compile_tokens(...) / evaluate(...): the condition language used by kcount/kfind*
"""

from .conditions.compiler import compile_tokens, evaluate
from .config.settings import Settings
from .session import Session

__all__ = ["Session", "Settings", "compile_tokens", "evaluate"]
