"""Launch the CollectAI backend (FastAPI) with uvicorn."""
import os
import subprocess
import sys
from pathlib import Path


def main():
    root = Path(__file__).parent

    (root / "data").mkdir(parents=True, exist_ok=True)

    # DOCKER=1 binds all interfaces and disables reload
    is_docker = os.environ.get("DOCKER", "0") == "1"
    host = "0.0.0.0" if is_docker else "127.0.0.1"
    port = os.environ.get("PORT") or os.environ.get("BACKEND_PORT", "8000")

    cmd = [
        sys.executable, "-m", "uvicorn", "collectai.main:app",
        "--host", host, "--port", port,
    ]
    if not is_docker:
        cmd.append("--reload")

    print(f"Starting CollectAI backend on http://{host}:{port} ...")
    backend = subprocess.Popen(cmd, cwd=str(root))
    try:
        backend.wait()
    except KeyboardInterrupt:
        print("\nShutting down...")
        backend.terminate()
        backend.wait()


if __name__ == "__main__":
    main()
