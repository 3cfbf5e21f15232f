#!/usr/bin/env python3
"""SessionEnd hook: report queued telemetry and ask the agent to finalize it.

The session itself is closed by the end_telemetry workflow tool.

Hook protocol:
- Reads JSON from stdin (cwd)
- Writes a TELEMETRY summary (session id, queued events) to stdout
- Exit 0 always; internal errors are logged to .claude/telemetry.log
"""

import sys
from pathlib import Path

# Add the workflow package to the path so the hook runs without installation
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "mcp-servers" / "workflow"))

from collab_workflow.hooks import run_hook

if __name__ == "__main__":
    sys.exit(run_hook("session-end"))
