__version__ = "0.3.0"

from tutor_orchestrator.exceptions import (  # noqa: E402
    AllProvidersFailedError,
    InvalidPayloadError,
    NoProviderAvailableError,
    OrchestratorError,
    ProviderError,
)
from tutor_orchestrator.models import Capability, ExecutionRequest, ExecutionResult, ResultStatus  # noqa: E402
from tutor_orchestrator.service import TutorOrchestrator  # noqa: E402

__all__ = [
    "AllProvidersFailedError",
    "Capability",
    "ExecutionRequest",
    "ExecutionResult",
    "InvalidPayloadError",
    "NoProviderAvailableError",
    "OrchestratorError",
    "ProviderError",
    "ResultStatus",
    "TutorOrchestrator",
    "__version__",
]
