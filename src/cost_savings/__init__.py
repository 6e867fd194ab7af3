"""Cost-savings case auditing: lifecycle, savings derivation, persistence and reports."""

import os
import subprocess

__version__ = "0.1.0"


# Reports record which build produced them: env > git describe > package version
def _git_version() -> str | None:
    try:
        rev = subprocess.run(
            ["git", "describe", "--always", "--dirty"],
            capture_output=True,
            text=True,
            timeout=5,
            cwd=os.path.dirname(os.path.abspath(__file__)),
        )
        if rev.returncode == 0 and rev.stdout:
            return rev.stdout.strip()
    except (FileNotFoundError, subprocess.TimeoutExpired):
        pass
    return None


BUILD_VERSION = os.environ.get("COSTSAV_BUILD_VERSION") or _git_version() or __version__
ENGINE_VERSION = __version__
