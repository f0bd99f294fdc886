import os
import signal
import subprocess
import sys
import time
from pathlib import Path

# Config
PROJECT_ROOT = Path(__file__).parent.resolve()
BACKEND_DIR  = PROJECT_ROOT / "backend"
PID_FILE     = PROJECT_ROOT / ".nbimage.pid"   # tracks our process group
HOST         = os.environ.get("NBIMAGE_HOST", "0.0.0.0")
PORT         = os.environ.get("NBIMAGE_PORT", "8000")


# ── PID helpers ───────────────────────────────────────────────────────────────

def _write_pid(pgid: int, pid: int) -> None:
    PID_FILE.write_text(f"{pgid}:{pid}\n")


def _read_pid() -> tuple[int, int] | None:
    """Return (pgid, pid) stored in PID file, or None."""
    try:
        parts = PID_FILE.read_text().strip().split(":")
        return int(parts[0]), int(parts[1])
    except (OSError, ValueError, IndexError):
        return None


def _pid_is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
        return True
    except OSError:
        return False


def _kill_group(pgid: int, sig: int = signal.SIGTERM) -> None:
    try:
        os.killpg(pgid, sig)
    except ProcessLookupError:
        pass
    except OSError as e:
        print(f"   Warning: killpg({pgid}, {sig}): {e}")


def clean_boot() -> None:
    """Stop an API server left over from a previous run."""
    stale = _read_pid()
    if stale is None:
        return
    pgid, pid = stale
    if not _pid_is_alive(pid):
        PID_FILE.unlink(missing_ok=True)
        return
    print(f"Found stale server (pid={pid}, pgid={pgid}), stopping it...")
    _kill_group(pgid, signal.SIGTERM)
    for _ in range(10):
        time.sleep(0.5)
        if not _pid_is_alive(pid):
            break
    else:
        _kill_group(pgid, signal.SIGKILL)
        time.sleep(0.5)
    PID_FILE.unlink(missing_ok=True)


def clean_shutdown(backend_proc: subprocess.Popen) -> None:
    """Terminate the process group, escalate to SIGKILL if needed."""
    if backend_proc.poll() is not None:
        return

    pgid = os.getpgid(backend_proc.pid)
    _kill_group(pgid, signal.SIGTERM)

    # uvicorn gets up to 8 s to finish in-flight requests
    for _ in range(16):
        time.sleep(0.5)
        if backend_proc.poll() is not None:
            break
    else:
        print("   SIGTERM timeout, forcing SIGKILL...")
        _kill_group(pgid, signal.SIGKILL)
        backend_proc.wait()

    PID_FILE.unlink(missing_ok=True)


# ── Main ─────────────────────────────────────────────────────────────────────

def run():
    print("Starting Notebook Image Curator API...")
    clean_boot()

    python_exec = os.environ.get("NBIMAGE_PYTHON") or sys.executable
    backend_cmd = [
        python_exec, "-m", "uvicorn", "nbimage.main:app",
        "--host", HOST, "--port", PORT,
        "--workers", "1",
    ]

    backend_proc = subprocess.Popen(
        backend_cmd,
        cwd=BACKEND_DIR,
        stdout=sys.stdout,
        stderr=sys.stderr,
        preexec_fn=os.setsid,   # new process group so we can killpg
    )
    pgid = os.getpgid(backend_proc.pid)
    _write_pid(pgid, backend_proc.pid)

    print(f"   API:  http://localhost:{PORT}/api/")
    print(f"   Docs: http://localhost:{PORT}/docs")
    print("   (Press Ctrl+C to stop)")

    try:
        while True:
            time.sleep(1)
            if backend_proc.poll() is not None:
                print("\nAPI server stopped unexpectedly.")
                PID_FILE.unlink(missing_ok=True)
                break
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        clean_shutdown(backend_proc)


if __name__ == "__main__":
    run()
