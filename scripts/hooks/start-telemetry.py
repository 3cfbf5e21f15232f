#!/usr/bin/env python3
"""SessionStart hook: prompt the agent to start telemetry for the active ticket.

Silent when a session younger than sessionMaxAgeHours is already running.

Hook protocol:
- Reads JSON from stdin (cwd)
- Writes a TELEMETRY notification to stdout when telemetry should be started
- Exit 0 always; internal errors are logged to .claude/telemetry.log
"""

import sys
from pathlib import Path

# Add the workflow package to the path so the hook runs without installation
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "mcp-servers" / "workflow"))

from collab_workflow.hooks import run_hook

if __name__ == "__main__":
    sys.exit(run_hook("session-start"))
