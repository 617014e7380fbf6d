from .engine import ExecutionEngine
from .types import ExecutionRequest, ExecutionResult, LibraryDescriptor, RenderableHandle

__all__ = [
    "ExecutionEngine",
    "ExecutionRequest",
    "ExecutionResult",
    "LibraryDescriptor",
    "RenderableHandle",
]
