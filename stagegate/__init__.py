"""stagegate: durable, resumable step pipelines with human approval gates."""

from .agent import CallableGenerationAgent, GenerationAgent, PydanticAIGenerationAgent
from .client import RunPoller
from .contracts import (
    Continue,
    ErrorRecord,
    Fail,
    RequiredAction,
    ResumeConditions,
    RunResult,
    RunStatus,
    StateSnapshot,
    Suspend,
    SuspendEnvelope,
)
from .controller import RunController
from .errors import (
    AgentFailure,
    IncompleteResume,
    InvalidTransition,
    NotFound,
    PollTimeout,
    SchemaValidationError,
    StagegateError,
    StepMismatch,
    UnknownWorkflow,
    WorkflowDefinitionError,
)
from .persistence import get_repository
from .workflow import StepContext, StepSpec, WorkflowDefinition, step

__version__ = "0.1.0"
__all__ = [
    "AgentFailure",
    "CallableGenerationAgent",
    "Continue",
    "ErrorRecord",
    "Fail",
    "GenerationAgent",
    "IncompleteResume",
    "InvalidTransition",
    "NotFound",
    "PollTimeout",
    "PydanticAIGenerationAgent",
    "RequiredAction",
    "ResumeConditions",
    "RunController",
    "RunPoller",
    "RunResult",
    "RunStatus",
    "SchemaValidationError",
    "StagegateError",
    "StateSnapshot",
    "StepContext",
    "StepMismatch",
    "StepSpec",
    "Suspend",
    "SuspendEnvelope",
    "UnknownWorkflow",
    "WorkflowDefinition",
    "WorkflowDefinitionError",
    "get_repository",
    "step",
]
