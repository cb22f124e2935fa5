"""
Judge0 code execution provider (submit-then-poll shape).
"""

from typing import Any, Dict, Optional

import httpx

from ..exceptions import MalformedResponseError, NotFoundError
from ..models import CodeExecutionPayload, ExecutionOutput, ExecutionStatus
from ..orchestrator.poller import AsyncJobPoller
from .base import BaseProvider, CodeExecutionMixin
from .execution import JUDGE0_IN_PROGRESS, JUDGE0_LANGUAGE_IDS, JUDGE0_STATUSES, summarize


def _number(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class Judge0Provider(CodeExecutionMixin, BaseProvider):
    provider_id = "judge0"
    language_table = JUDGE0_LANGUAGE_IDS

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://judge0-ce.p.rapidapi.com",
        api_host: str = "judge0-ce.p.rapidapi.com",
        timeout: float = 10.0,
        poll_interval: float = 0.1,
        poll_deadline: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
        poller: Optional[AsyncJobPoller] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.api_host = api_host
        self.poller = poller or AsyncJobPoller(
            interval=poll_interval, deadline=poll_deadline, provider=self.provider_id
        )

    @classmethod
    def from_settings(cls, settings) -> Optional["Judge0Provider"]:
        api_key = settings.secret("judge0_api_key")
        if not api_key:
            return None
        return cls(
            api_key,
            base_url=settings.judge0_api_url,
            api_host=settings.judge0_api_host,
            timeout=settings.execution_timeout,
            poll_interval=settings.judge0_poll_interval,
            poll_deadline=settings.judge0_poll_deadline,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": self.api_host,
        }

    async def execute_code(self, payload: CodeExecutionPayload) -> ExecutionOutput:
        language_id = JUDGE0_LANGUAGE_IDS.get(payload.language)
        if language_id is None:
            raise NotFoundError(
                f"Judge0 has no language id for '{payload.language}'", provider=self.provider_id
            )

        async def submit() -> str:
            self._log_request("submissions", language=payload.language)
            data = await self._request(
                "POST",
                f"{self.base_url}/submissions",
                params={"base64_encoded": "false", "wait": "false"},
                json={
                    "source_code": payload.code,
                    "language_id": language_id,
                    "stdin": payload.stdin,
                },
                headers=self._headers(),
            )
            token = data.get("token") if isinstance(data, dict) else None
            if not token:
                raise MalformedResponseError("No token received from Judge0", provider=self.provider_id)
            return token

        async def check(token: str) -> Dict[str, Any]:
            data = await self._request(
                "GET",
                f"{self.base_url}/submissions/{token}",
                params={"base64_encoded": "false"},
                headers=self._headers(),
            )
            if not isinstance(data, dict) or not isinstance(data.get("status"), dict):
                raise MalformedResponseError("Judge0 submission has no status", provider=self.provider_id)
            return data

        outcome = await self.poller.run(submit, check, self._is_terminal)
        return self._to_output(outcome.value, payload.language)

    @staticmethod
    def _is_terminal(result: Dict[str, Any]) -> bool:
        return result["status"].get("id") not in JUDGE0_IN_PROGRESS

    def _to_output(self, result: Dict[str, Any], language: str) -> ExecutionOutput:
        status_id = result["status"].get("id")
        description = result["status"].get("description") or ""
        status = JUDGE0_STATUSES.get(status_id, ExecutionStatus.INTERNAL_ERROR)

        stdout = result.get("stdout") or ""
        stderr = result.get("stderr") or ""
        compile_output = result.get("compile_output") or ""
        # Judge0 reports time in seconds and memory in KB.
        seconds = _number(result.get("time"))
        time_ms = seconds * 1000 if seconds is not None else None
        memory_kb = _number(result.get("memory"))
        error = compile_output if status == ExecutionStatus.COMPILATION_ERROR else stderr or result.get("message") or ""

        exit_signal = result.get("exit_signal")
        return ExecutionOutput(
            output=stdout.strip(),
            stdout=stdout,
            stderr=stderr,
            compile_output=compile_output,
            exit_code=result.get("exit_code"),
            signal=str(exit_signal) if exit_signal is not None else None,
            status=status,
            language=language,
            execution_time_ms=time_ms,
            memory_kb=memory_kb,
            analysis=summarize(
                status,
                language,
                output=stdout.strip(),
                error=error,
                time_ms=time_ms,
                memory_kb=memory_kb,
                detail=description,
            ),
        )
