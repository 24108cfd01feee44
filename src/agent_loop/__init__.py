"""Run an external code-generation CLI against staged tasks and iterate over a PRD backlog."""

from agent_loop.config import Settings
from agent_loop.errors import (
    ProcessError,
    ProcessTimeoutError,
    ResultMalformedError,
    ResultMissingError,
    StagingError,
    TaskError,
    UnexpectedError,
    ValidationError,
)
from agent_loop.hooks import LifecycleHooks
from agent_loop.loop import (
    ExecuteLoopOptions,
    IterationResult,
    LoopExecutor,
    LoopMode,
    LoopResult,
    StoryOutcome,
)
from agent_loop.manager import TaskManager
from agent_loop.models import ExecuteRequest, ExecuteResult
from agent_loop.prd import PRD, UserStory
from agent_loop.progress import EntryKind, ProgressEntry, ProgressLog, ProgressTracker
from agent_loop.schema import JsonSchemaContract, OutputContract, PydanticContract, Violation

__version__ = "0.1.0"

__all__ = [
    "PRD",
    "EntryKind",
    "ExecuteLoopOptions",
    "ExecuteRequest",
    "ExecuteResult",
    "IterationResult",
    "JsonSchemaContract",
    "LifecycleHooks",
    "LoopExecutor",
    "LoopMode",
    "LoopResult",
    "OutputContract",
    "ProcessError",
    "ProcessTimeoutError",
    "ProgressEntry",
    "ProgressLog",
    "ProgressTracker",
    "PydanticContract",
    "ResultMalformedError",
    "ResultMissingError",
    "Settings",
    "StagingError",
    "StoryOutcome",
    "TaskError",
    "TaskManager",
    "UnexpectedError",
    "UserStory",
    "ValidationError",
    "Violation",
    "__version__",
]
