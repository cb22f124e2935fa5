"""
Request, payload and result models shared by every provider and the orchestrator.
"""

import uuid
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

Difficulty = Literal["easy", "medium", "hard"]


class Capability(str, Enum):
    """Kinds of request the orchestrator serves."""

    ANSWER = "answer"
    ANALYZE_CODE = "analyze_code"
    GENERATE_QUIZ = "generate_quiz"
    EXPLAIN_ALGORITHM = "explain_algorithm"
    EXECUTE_CODE = "execute_code"
    SPEECH_TO_TEXT = "speech_to_text"
    TEXT_TO_SPEECH = "text_to_speech"


TEXT_CAPABILITIES = frozenset(
    {
        Capability.ANSWER,
        Capability.ANALYZE_CODE,
        Capability.GENERATE_QUIZ,
        Capability.EXPLAIN_ALGORITHM,
    }
)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class QuestionPayload(_Payload):
    question: str = Field(..., min_length=1, description="Question asked by the student")
    language: str = Field(default="python", min_length=1)


class CodeAnalysisPayload(_Payload):
    code: str = Field(..., min_length=1)
    language: str = Field(default="python", min_length=1)


class QuizPayload(_Payload):
    topic: str = Field(..., min_length=1)
    difficulty: Difficulty = "medium"
    count: int = Field(default=3, ge=1, le=10)


class AlgorithmPayload(_Payload):
    algorithm: str = Field(..., min_length=1)
    language: str = Field(default="python", min_length=1)


class CodeExecutionPayload(_Payload):
    # Leading whitespace is significant in source code.
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    code: str = Field(..., min_length=1)
    language: str = Field(..., min_length=1)
    stdin: str = ""

    @field_validator("code")
    @classmethod
    def code_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("code must not be blank")
        return v

    @field_validator("language")
    @classmethod
    def normalize_language(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("language must not be blank")
        return v


class SpeechToTextPayload(_Payload):
    audio: bytes = Field(..., min_length=1)
    language_code: str = "en-US"
    content_type: str = "audio/wav"


class TextToSpeechPayload(_Payload):
    text: str = Field(..., min_length=1)
    language_code: str = "en-US"
    voice: Optional[str] = None


Payload = Union[
    QuestionPayload,
    CodeAnalysisPayload,
    QuizPayload,
    AlgorithmPayload,
    CodeExecutionPayload,
    SpeechToTextPayload,
    TextToSpeechPayload,
]

PAYLOAD_TYPES: Dict[Capability, Type[BaseModel]] = {
    Capability.ANSWER: QuestionPayload,
    Capability.ANALYZE_CODE: CodeAnalysisPayload,
    Capability.GENERATE_QUIZ: QuizPayload,
    Capability.EXPLAIN_ALGORITHM: AlgorithmPayload,
    Capability.EXECUTE_CODE: CodeExecutionPayload,
    Capability.SPEECH_TO_TEXT: SpeechToTextPayload,
    Capability.TEXT_TO_SPEECH: TextToSpeechPayload,
}


class ExecutionRequest(BaseModel):
    """A capability request whose payload shape has been checked."""

    capability: Capability
    payload: Payload
    requested_provider: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def coerce_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "capability" not in data:
            return data
        capability = Capability(data["capability"])
        expected = PAYLOAD_TYPES[capability]
        payload = data.get("payload")
        if isinstance(payload, BaseModel) and not isinstance(payload, expected):
            raise ValueError(
                f"{type(payload).__name__} is not a valid payload for {capability.value}"
            )
        if isinstance(payload, dict):
            payload = expected.model_validate(payload)
        return {**data, "capability": capability, "payload": payload}


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuizQuestion(_Body):
    question: str = Field(..., min_length=1)
    options: List[str] = Field(..., min_length=2)
    correct_answer: int
    explanation: str = ""
    difficulty: Difficulty = "medium"

    @model_validator(mode="after")
    def answer_index_in_range(self) -> "QuizQuestion":
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError(
                f"correct_answer {self.correct_answer} outside 0..{len(self.options) - 1}"
            )
        return self


class QuizSet(_Body):
    questions: List[QuizQuestion] = Field(..., min_length=1)


class TutorResponse(_Body):
    explanation: str
    code_example: Optional[str] = None
    visualization: Optional[str] = None
    quiz: List[QuizQuestion] = Field(default_factory=list)
    related_topics: List[str] = Field(default_factory=list)


class CodeAnalysis(_Body):
    errors: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    explanation: str
    fixed_code: Optional[str] = None


class ExecutionStatus(str, Enum):
    """Terminal outcome of a sandboxed run."""

    ACCEPTED = "accepted"
    WRONG_ANSWER = "wrong_answer"
    TIME_LIMIT_EXCEEDED = "time_limit_exceeded"
    COMPILATION_ERROR = "compilation_error"
    RUNTIME_ERROR = "runtime_error"
    MEMORY_LIMIT_EXCEEDED = "memory_limit_exceeded"
    RESOURCE_LIMIT_EXCEEDED = "resource_limit_exceeded"
    INTERNAL_ERROR = "internal_error"


class ExecutionOutput(_Body):
    output: str = ""
    stdout: str = ""
    stderr: str = ""
    compile_output: str = ""
    exit_code: Optional[int] = None
    signal: Optional[str] = None
    status: ExecutionStatus
    language: str
    execution_time_ms: Optional[float] = None
    memory_kb: Optional[float] = None
    analysis: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.ACCEPTED


class Transcript(_Body):
    transcript: str
    confidence: Optional[float] = None
    language: str


class SpeechAudio(_Body):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, ser_json_bytes="base64"
    )

    audio: bytes
    content_type: str = "audio/wav"


class CodeValidation(_Body):
    """Verdict of a trial run used to check that code compiles and exits cleanly."""

    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    language: str
    provider: Optional[str] = None
    status: Optional[ExecutionStatus] = None


class Voice(_Body):
    name: str
    language: str
    gender: str = "neutral"
    description: str = ""


ResultBody = Union[TutorResponse, CodeAnalysis, QuizSet, ExecutionOutput, Transcript, SpeechAudio]


class ResultStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"


class ProviderAttempt(BaseModel):
    """Last error seen from one provider during a resolution."""

    provider: str
    kind: str
    message: str
    attempts: int = 1


class ExecutionResult(BaseModel):
    """Normalized outcome of one capability request."""

    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    capability: Capability
    producing_provider: Optional[str] = None
    status: ResultStatus
    body: Optional[ResultBody] = None
    diagnostics: str = ""
    elapsed_ms: float = 0.0
    attempts: List[ProviderAttempt] = Field(default_factory=list)

    @model_validator(mode="after")
    def authoritative_field_present(self) -> "ExecutionResult":
        if self.status == ResultStatus.SUCCESS and self.body is None:
            raise ValueError("a successful result needs a body")
        if self.status == ResultStatus.FAILURE and self.body is not None:
            raise ValueError("a failed result carries diagnostics only")
        if self.status != ResultStatus.SUCCESS and not self.diagnostics:
            raise ValueError(f"a {self.status.value} result needs diagnostics")
        return self

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.SUCCESS


def validate_payload(capability: Capability, payload: Any) -> Payload:
    """Return the typed payload for ``capability``; raises pydantic/ValueError on mismatch."""
    request = ExecutionRequest(capability=capability, payload=payload)
    return request.payload


__all__ = [
    "AlgorithmPayload",
    "Capability",
    "CodeAnalysis",
    "CodeAnalysisPayload",
    "CodeExecutionPayload",
    "CodeValidation",
    "Difficulty",
    "ExecutionOutput",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionStatus",
    "PAYLOAD_TYPES",
    "Payload",
    "ProviderAttempt",
    "QuestionPayload",
    "QuizPayload",
    "QuizQuestion",
    "QuizSet",
    "ResultBody",
    "ResultStatus",
    "SpeechAudio",
    "SpeechToTextPayload",
    "TEXT_CAPABILITIES",
    "TextToSpeechPayload",
    "Transcript",
    "TutorResponse",
    "ValidationError",
    "Voice",
    "validate_payload",
]
