import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def test_package_imports_in_fresh_interpreter():
    result = subprocess.run(
        [
            sys.executable,
            "-c",
            "import service_telemetry as st; "
            "assert callable(st.init_tracing) and callable(st.create_logger)",
        ],
        cwd=ROOT,
        capture_output=True,
        text=True,
        timeout=60,
    )
    assert result.returncode == 0, result.stderr


def test_submodule_imports_in_fresh_interpreter():
    result = subprocess.run(
        [sys.executable, "-c", "from service_telemetry.config import resolve"],
        cwd=ROOT,
        capture_output=True,
        text=True,
        timeout=60,
    )
    assert result.returncode == 0, result.stderr
