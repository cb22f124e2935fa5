"""
CodeX free-tier compile API (immediate-result shape).
"""

from typing import Optional

import httpx

from ..exceptions import MalformedResponseError, NotFoundError
from ..models import CodeExecutionPayload, ExecutionOutput, ExecutionStatus
from .base import BaseProvider, CodeExecutionMixin
from .execution import CODEX_LANGUAGES, summarize


def _milliseconds(value) -> Optional[float]:
    try:
        return float(str(value).rstrip("ms").strip())
    except (TypeError, ValueError):
        return None


class CodexProvider(CodeExecutionMixin, BaseProvider):
    provider_id = "codex"
    language_table = CODEX_LANGUAGES

    def __init__(
        self,
        base_url: str = "https://api.codex.jaagrav.in",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings) -> Optional["CodexProvider"]:
        if not settings.codex_enabled:
            return None
        return cls(settings.codex_api_url, timeout=settings.execution_timeout)

    async def execute_code(self, payload: CodeExecutionPayload) -> ExecutionOutput:
        language = CODEX_LANGUAGES.get(payload.language)
        if language is None:
            raise NotFoundError(
                f"CodeX does not support language '{payload.language}'", provider=self.provider_id
            )

        self._log_request("compile", language=payload.language)
        data = await self._request(
            "POST",
            f"{self.base_url}/compile",
            json={"code": payload.code, "language": language, "input": payload.stdin},
        )
        if not isinstance(data, dict) or "output" not in data:
            raise MalformedResponseError("Invalid response from CodeX API", provider=self.provider_id)

        output = (data.get("output") or "").strip()
        error = data.get("error") or ""
        time_ms = _milliseconds(data.get("time"))
        if data.get("status") == "Success" or (data.get("status") is None and not error):
            status = ExecutionStatus.ACCEPTED
        else:
            status = ExecutionStatus.RUNTIME_ERROR
        return ExecutionOutput(
            output=output,
            stdout=output,
            stderr=error,
            status=status,
            language=payload.language,
            execution_time_ms=time_ms,
            analysis=summarize(status, payload.language, output=output, error=error, time_ms=time_ms),
        )
