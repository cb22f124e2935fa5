"""
Language tables and result summaries shared by the code-execution backends.
"""

from typing import Dict, List, NamedTuple, Optional, Tuple

from ..models import ExecutionOutput, ExecutionStatus


class PistonRuntime(NamedTuple):
    language: str
    version: str
    file_name: str


PISTON_RUNTIMES: Dict[str, PistonRuntime] = {
    "python": PistonRuntime("python", "3.10.0", "main.py"),
    "python3": PistonRuntime("python", "3.10.0", "main.py"),
    "javascript": PistonRuntime("node", "18.15.0", "main.js"),
    "js": PistonRuntime("node", "18.15.0", "main.js"),
    "java": PistonRuntime("java", "15.0.2", "Main.java"),
    "cpp": PistonRuntime("cpp", "10.2.0", "main.cpp"),
    "c": PistonRuntime("c", "10.2.0", "main.c"),
    "csharp": PistonRuntime("csharp", "6.12.0", "Program.cs"),
    "go": PistonRuntime("go", "1.19.0", "main.go"),
    "rust": PistonRuntime("rust", "1.70.0", "main.rs"),
    "php": PistonRuntime("php", "8.2.8", "main.php"),
    "ruby": PistonRuntime("ruby", "3.0.0", "main.rb"),
    "swift": PistonRuntime("swift", "5.5.3", "main.swift"),
    "kotlin": PistonRuntime("kotlin", "1.8.20", "Main.kt"),
    "scala": PistonRuntime("scala", "3.3.0", "Main.scala"),
    "r": PistonRuntime("r", "4.3.0", "main.R"),
    "bash": PistonRuntime("bash", "5.1.0", "script.sh"),
    "sql": PistonRuntime("sql", "sqlite3", "query.sql"),
    "typescript": PistonRuntime("typescript", "5.0.3", "main.ts"),
}

JUDGE0_LANGUAGE_IDS: Dict[str, int] = {
    "python": 71,
    "python3": 71,
    "javascript": 63,
    "js": 63,
    "java": 62,
    "cpp": 54,
    "c": 50,
    "csharp": 51,
    "go": 60,
    "rust": 73,
    "php": 68,
    "ruby": 72,
    "swift": 83,
    "kotlin": 78,
    "scala": 81,
    "r": 80,
    "bash": 46,
    "sql": 82,
    "typescript": 74,
}

CODEX_LANGUAGES: Dict[str, str] = {
    "python": "py",
    "python3": "py",
    "javascript": "js",
    "js": "js",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "csharp": "cs",
    "go": "go",
}

# Judge0 status ids; 1 (In Queue) and 2 (Processing) are non-terminal.
JUDGE0_IN_PROGRESS = frozenset({1, 2})
JUDGE0_STATUSES: Dict[int, ExecutionStatus] = {
    3: ExecutionStatus.ACCEPTED,
    4: ExecutionStatus.WRONG_ANSWER,
    5: ExecutionStatus.TIME_LIMIT_EXCEEDED,
    6: ExecutionStatus.COMPILATION_ERROR,
    7: ExecutionStatus.RUNTIME_ERROR,  # SIGSEGV
    8: ExecutionStatus.MEMORY_LIMIT_EXCEEDED,
    9: ExecutionStatus.RUNTIME_ERROR,  # SIGFPE
    10: ExecutionStatus.RUNTIME_ERROR,  # SIGABRT
    11: ExecutionStatus.RUNTIME_ERROR,  # NZEC
    12: ExecutionStatus.RUNTIME_ERROR,  # Other
    13: ExecutionStatus.INTERNAL_ERROR,
    14: ExecutionStatus.INTERNAL_ERROR,  # Exec Format Error
}

# Signals that mean the sandbox killed the run for exceeding its limits.
LIMIT_SIGNALS = frozenset({"SIGKILL", "SIGTERM", "SIGXCPU"})


def summarize(
    status: ExecutionStatus,
    language: str,
    output: str = "",
    error: str = "",
    time_ms: Optional[float] = None,
    memory_kb: Optional[float] = None,
    detail: str = "",
) -> str:
    """Human-readable analysis line for an execution outcome."""
    if status == ExecutionStatus.ACCEPTED:
        text = f"Code executed successfully in {language}!\nOutput: {output}"
        if time_ms is not None:
            text += f"\nExecution time: {time_ms:g}ms"
        if memory_kb is not None:
            text += f"\nMemory used: {memory_kb:g}KB"
        return text
    if status == ExecutionStatus.WRONG_ANSWER:
        return "Wrong Answer: Your code ran but produced incorrect output.\nExpected different results. Check your logic."
    if status == ExecutionStatus.TIME_LIMIT_EXCEEDED:
        return "Time Limit Exceeded: Your code took too long to execute.\nConsider optimizing your algorithm."
    if status == ExecutionStatus.COMPILATION_ERROR:
        return f"Compilation Error: {error}\nCheck your syntax and try again."
    if status == ExecutionStatus.RUNTIME_ERROR:
        return f"Runtime Error: {error}\nYour code crashed during execution."
    if status == ExecutionStatus.MEMORY_LIMIT_EXCEEDED:
        return "Memory Limit Exceeded: Your code used too much memory.\nConsider optimizing your data structures."
    if status == ExecutionStatus.RESOURCE_LIMIT_EXCEEDED:
        return f"Execution stopped by the sandbox ({detail or 'resource limit'}).\nYour code may loop forever or use too many resources."
    return f"Execution Status: {detail or status.value}\nOutput: {output}\nError: {error}"


def validation_findings(output: ExecutionOutput) -> Tuple[List[str], List[str]]:
    """Split a trial run into (errors, warnings) for code validation.

    Compiler output on a run that still compiled counts as a warning; anything
    on stderr, a limit or crash signal, or a non-zero exit is an error.
    """
    errors: List[str] = []
    warnings: List[str] = []
    compile_output = output.compile_output.strip()
    if compile_output:
        if output.status == ExecutionStatus.COMPILATION_ERROR:
            errors.append(compile_output)
        else:
            warnings.append(compile_output)
    if output.stderr.strip() and output.stderr.strip() != compile_output:
        errors.append(output.stderr.strip())

    if output.signal == "SIGKILL" or output.status == ExecutionStatus.TIME_LIMIT_EXCEEDED:
        errors.append("Code execution timeout")
    elif output.signal == "SIGSEGV":
        errors.append("Segmentation fault")
    elif output.status == ExecutionStatus.MEMORY_LIMIT_EXCEEDED:
        errors.append("Memory limit exceeded")
    elif output.exit_code not in (0, None):
        errors.append(f"Process exited with code {output.exit_code}")

    if not errors and output.status != ExecutionStatus.ACCEPTED:
        errors.append(output.analysis.splitlines()[0] if output.analysis else output.status.value)
    return errors, warnings
