"""
Running locally installed model CLIs (whisper, coqui ``tts``) as subprocesses.
"""

import asyncio
import logging
import shutil
from typing import Optional, Sequence, Tuple

from ..exceptions import NotFoundError, ProviderTimeoutError, UnknownProviderError

logger = logging.getLogger(__name__)


async def run_cli(
    args: Sequence[str],
    timeout: float,
    provider: str,
    cwd: Optional[str] = None,
) -> Tuple[str, str]:
    """Run ``args`` and return (stdout, stderr).

    A missing executable is ``NotFoundError``; a run over ``timeout`` is killed
    and reported as ``ProviderTimeoutError``; a non-zero exit is
    ``UnknownProviderError``.
    """
    executable = shutil.which(args[0])
    if executable is None:
        raise NotFoundError(f"'{args[0]}' executable is not installed", provider=provider)

    logger.info(f"Running {args[0]}", extra={"provider": provider, "argv": list(args[1:])})
    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            *args[1:],
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise UnknownProviderError(f"Failed to start {args[0]}: {e}", provider=provider) from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        process.kill()
        await process.wait()
        raise ProviderTimeoutError(f"{args[0]} did not finish within {timeout}s", provider=provider) from e
    except asyncio.CancelledError:
        process.kill()
        await process.wait()
        raise

    out = stdout.decode("utf-8", errors="replace")
    err = stderr.decode("utf-8", errors="replace")
    if process.returncode != 0:
        raise UnknownProviderError(
            f"{args[0]} exited with code {process.returncode}: {err.strip()[:500]}",
            provider=provider,
            details={"returncode": process.returncode},
        )
    return out, err


def is_installed(executable: str) -> bool:
    return shutil.which(executable) is not None
