import subprocess
from datetime import datetime, timezone


def run_command(command: str, timeout: int | None = None) -> dict:
    start_time = datetime.now(timezone.utc)
    result = {
        "exit_code": None,
        "stdout": "",
        "stderr": "",
        "start_at": start_time.isoformat(),
        "end_at": None,
        "duration_seconds": None
    }

    try:
        process = subprocess.run(
            command,
            shell=True,
            capture_output=True,
            text=True,
            timeout=timeout
        )
        result["exit_code"] = process.returncode
        # Output is reported back verbatim, trailing newline included
        result["stdout"] = process.stdout
        result["stderr"] = process.stderr

    except subprocess.TimeoutExpired as e:
        stdout = e.stdout or ""
        if isinstance(stdout, bytes):
            stdout = stdout.decode("utf-8", errors="replace")
        result.update({
            "exit_code": -1,
            "stdout": stdout,
            "stderr": f"Command timed out after {timeout} seconds.",
        })

    except OSError as e:
        result.update({
            "exit_code": 127,
            "stderr": f"Execution error: {e}",
        })

    end_time = datetime.now(timezone.utc)
    result["end_at"] = end_time.isoformat()
    result["duration_seconds"] = (end_time - start_time).total_seconds()
    return result


def report_text(result: dict) -> str:
    """What the agent sends back as `stdout`: output, plus stderr on failure."""
    if result["exit_code"] == 0:
        return result["stdout"]
    return result["stdout"] + result["stderr"]
