"""
Piston code execution provider (immediate-result shape).
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import MalformedResponseError, NotFoundError, ProviderError
from ..models import CodeExecutionPayload, ExecutionOutput, ExecutionStatus
from .base import BaseProvider, CodeExecutionMixin
from .execution import LIMIT_SIGNALS, PISTON_RUNTIMES, summarize

logger = logging.getLogger(__name__)


class PistonProvider(CodeExecutionMixin, BaseProvider):
    provider_id = "piston"
    language_table = PISTON_RUNTIMES

    def __init__(
        self,
        base_url: str = "https://emkc.org/api/v2/piston",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings) -> Optional["PistonProvider"]:
        if not settings.piston_enabled:
            return None
        return cls(settings.piston_api_url, timeout=settings.execution_timeout)

    async def runtimes(self) -> List[Dict[str, Any]]:
        """Runtimes the Piston instance has installed (`GET /runtimes`)."""
        data = await self._request("GET", f"{self.base_url}/runtimes", timeout=min(self.timeout, 5.0))
        if not isinstance(data, list):
            raise MalformedResponseError("Piston runtimes response is not a list", provider=self.provider_id)
        return data

    async def is_available(self) -> bool:
        try:
            await self.runtimes()
        except ProviderError as e:
            logger.info("Piston API not available", extra={"provider": self.provider_id, "error": str(e)})
            return False
        return True

    async def execute_code(self, payload: CodeExecutionPayload) -> ExecutionOutput:
        runtime = PISTON_RUNTIMES.get(payload.language)
        if runtime is None:
            raise NotFoundError(
                f"Piston has no runtime for language '{payload.language}'", provider=self.provider_id
            )

        self._log_request("execute", language=payload.language)
        data = await self._request(
            "POST",
            f"{self.base_url}/execute",
            json={
                "language": runtime.language,
                "version": runtime.version,
                "files": [{"name": runtime.file_name, "content": payload.code}],
                "stdin": payload.stdin,
            },
        )
        return self._to_output(data, payload.language)

    def _to_output(self, data: Any, language: str) -> ExecutionOutput:
        if not isinstance(data, dict) or not isinstance(data.get("run"), dict):
            raise MalformedResponseError("Piston response has no 'run' block", provider=self.provider_id)

        run: Dict[str, Any] = data["run"]
        compile_block: Dict[str, Any] = data.get("compile") or {}
        stdout = run.get("stdout") or ""
        stderr = run.get("stderr") or ""
        output = run.get("output") if run.get("output") is not None else stdout + stderr
        compile_output = compile_block.get("output") or compile_block.get("stderr") or ""
        signal = run.get("signal")
        exit_code = run.get("code")

        if compile_block and compile_block.get("code") not in (0, None):
            status = ExecutionStatus.COMPILATION_ERROR
        elif signal in LIMIT_SIGNALS:
            status = ExecutionStatus.RESOURCE_LIMIT_EXCEEDED
        elif signal or exit_code not in (0, None):
            status = ExecutionStatus.RUNTIME_ERROR
        else:
            status = ExecutionStatus.ACCEPTED

        error = compile_output if status == ExecutionStatus.COMPILATION_ERROR else stderr
        if status == ExecutionStatus.RUNTIME_ERROR and not error:
            error = f"Process exited with code {exit_code}" + (f" ({signal})" if signal else "")
        return ExecutionOutput(
            output=output.strip(),
            stdout=stdout,
            stderr=stderr,
            compile_output=compile_output,
            exit_code=exit_code,
            signal=signal,
            status=status,
            language=language,
            analysis=summarize(status, language, output=output.strip(), error=error, detail=signal or ""),
        )
