from .bridge import ExecutionBridge, execute
from .completion import LessonCompletionGate
from .execution.client_engine import ClientEngine
from .execution.remote_engine import RemoteEngine
from .execution.types import ExecutionResult
from .ide import IdeSession
from .progress import LearnixApiClient, ProgressStore
from .settings import LearnixSettings

__all__ = [
    "ClientEngine",
    "ExecutionBridge",
    "ExecutionResult",
    "IdeSession",
    "LearnixApiClient",
    "LearnixSettings",
    "LessonCompletionGate",
    "ProgressStore",
    "RemoteEngine",
    "execute",
]
