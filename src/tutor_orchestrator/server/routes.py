"""HTTP routes for the tutor capabilities."""

import base64
import binascii
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from tutor_orchestrator.exceptions import InvalidPayloadError
from tutor_orchestrator.models import (
    AlgorithmPayload,
    CodeAnalysisPayload,
    CodeExecutionPayload,
    Difficulty,
    ExecutionResult,
    QuestionPayload,
    QuizPayload,
    SpeechAudio,
)
from tutor_orchestrator.service import TutorOrchestrator

ai_router = APIRouter(prefix="/ai", tags=["ai"])


def get_orchestrator(request: Request) -> TutorOrchestrator:
    return request.app.state.orchestrator


def _result_response(result: ExecutionResult) -> JSONResponse:
    return JSONResponse(status_code=200, content=result.model_dump(mode="json", by_alias=True))


class AskRequest(QuestionPayload):
    provider: Optional[str] = None


class AnalyzeRequest(CodeAnalysisPayload):
    provider: Optional[str] = None


class QuizRequest(QuizPayload):
    provider: Optional[str] = None


class ExplainRequest(AlgorithmPayload):
    provider: Optional[str] = None


class ExecuteRequest(CodeExecutionPayload):
    provider: Optional[str] = None


class ValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    language: str = Field(..., min_length=1)
    provider: Optional[str] = None


class SpeechToTextRequest(BaseModel):
    audio_base64: str = Field(..., min_length=1, description="Base64-encoded audio")
    language_code: str = "en-US"
    content_type: str = "audio/wav"
    provider: Optional[str] = None


class TextToSpeechRequest(BaseModel):
    text: str
    language_code: str = "en-US"
    voice: Optional[str] = None
    provider: Optional[str] = None


@ai_router.post("/ask")
async def ask(body: AskRequest, orchestrator: TutorOrchestrator = Depends(get_orchestrator)):
    """Answer a coding question."""
    result = await orchestrator.answer_question(body.question, body.language, provider=body.provider)
    return _result_response(result)


@ai_router.post("/analyze")
async def analyze(body: AnalyzeRequest, orchestrator: TutorOrchestrator = Depends(get_orchestrator)):
    result = await orchestrator.analyze_code(body.code, body.language, provider=body.provider)
    return _result_response(result)


@ai_router.post("/quiz")
async def quiz(body: QuizRequest, orchestrator: TutorOrchestrator = Depends(get_orchestrator)):
    difficulty: Difficulty = body.difficulty
    result = await orchestrator.generate_quiz(body.topic, difficulty, body.count, provider=body.provider)
    return _result_response(result)


@ai_router.post("/explain")
async def explain(body: ExplainRequest, orchestrator: TutorOrchestrator = Depends(get_orchestrator)):
    result = await orchestrator.explain_algorithm(body.algorithm, body.language, provider=body.provider)
    return _result_response(result)


@ai_router.post("/execute")
async def execute(body: ExecuteRequest, orchestrator: TutorOrchestrator = Depends(get_orchestrator)):
    """Run code in a sandbox; non-accepted runs come back as ``partial_failure``."""
    result = await orchestrator.execute_code(body.code, body.language, body.stdin, provider=body.provider)
    return _result_response(result)


@ai_router.post("/speech-to-text")
async def speech_to_text(
    body: SpeechToTextRequest, orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    try:
        audio = base64.b64decode(body.audio_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidPayloadError("audio_base64 is not valid base64", field="audio_base64") from e
    result = await orchestrator.speech_to_text(
        audio, body.language_code, body.content_type, provider=body.provider
    )
    return _result_response(result)


@ai_router.post("/text-to-speech")
async def text_to_speech(
    body: TextToSpeechRequest, orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    """Synthesize speech; the response body is the audio itself."""
    result = await orchestrator.text_to_speech(
        body.text, body.language_code, body.voice, provider=body.provider
    )
    speech: SpeechAudio = result.body
    return Response(
        content=speech.audio,
        media_type=speech.content_type,
        headers={"X-Provider": result.producing_provider or "", "X-Elapsed-Ms": str(result.elapsed_ms)},
    )


@ai_router.post("/validate")
async def validate(body: ValidateRequest, orchestrator: TutorOrchestrator = Depends(get_orchestrator)):
    """Trial-run code and report compile and runtime errors."""
    validation = await orchestrator.validate_code(body.code, body.language, provider=body.provider)
    return validation.model_dump(mode="json", by_alias=True)


@ai_router.get("/languages")
async def languages(
    provider: Optional[str] = None, orchestrator: TutorOrchestrator = Depends(get_orchestrator)
):
    return orchestrator.supported_languages(provider)


@ai_router.get("/voices")
async def voices(
    language_code: Optional[str] = Query(default=None, alias="languageCode"),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator),
):
    return {
        provider_id: [voice.model_dump(by_alias=True) for voice in provider_voices]
        for provider_id, provider_voices in orchestrator.available_voices(language_code).items()
    }


@ai_router.get("/providers")
async def providers(check: bool = False, orchestrator: TutorOrchestrator = Depends(get_orchestrator)):
    """Primary and available providers per capability; ``check=true`` also checks each backend."""
    if check:
        return await orchestrator.check_status()
    return orchestrator.status()
