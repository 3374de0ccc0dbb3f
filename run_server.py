#!/usr/bin/env python3
"""
Context Budget - FastMCP Runner

Runs the stdio server as a module so package-relative imports resolve.
"""

import subprocess
import sys
from pathlib import Path


def main() -> None:
    """Run the context budget server."""
    project_root = Path(__file__).parent

    cmd = [sys.executable, "-m", "context_budget.server"]

    try:
        subprocess.run(cmd, cwd=project_root, check=True)
    except KeyboardInterrupt:
        print("\nServer stopped.")
    except subprocess.CalledProcessError as e:
        print(f"Server exited with status {e.returncode}")
        sys.exit(e.returncode)


if __name__ == "__main__":
    main()
