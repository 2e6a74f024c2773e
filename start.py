from recall_engine.config import EngineConfig
import sys
import subprocess
import webbrowser
import time
from pathlib import Path

def main():
    print("Starting Recall Lab API...")

    # Check if .venv exists
    venv_path = Path(".venv")
    if sys.platform == "win32":
        python_executable = venv_path / "Scripts" / "python.exe"
    else:
        python_executable = venv_path / "bin" / "python"

    if not python_executable.exists():
        print(f"Virtual environment not found at {python_executable}.")
        print("Attempting to use system python...")
        python_executable = sys.executable

    port = str(EngineConfig().port)
    # Run uvicorn as a module so the package imports resolve
    cmd = [str(python_executable), "-m", "uvicorn", "recall_engine.main:app", "--port", port, "--host", "127.0.0.1"]

    print(f"Running backend: {' '.join(cmd)}")
    process = None
    try:
        process = subprocess.Popen(cmd)

        # Wait a moment for server to start
        time.sleep(2)

        print("Opening API docs...")
        webbrowser.open(f"http://127.0.0.1:{port}/docs")

        print("API is running. Press Ctrl+C to stop.")
        process.wait()
    except KeyboardInterrupt:
        print("\nStopping...")
        process.terminate()
    except OSError as e:
        print(f"Error: {e}")
        if process is not None:
            process.terminate()

if __name__ == "__main__":
    main()
