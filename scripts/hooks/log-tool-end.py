#!/usr/bin/env python3
"""PostToolUse hook: queue a tool end event with its duration.

Duration comes from the start record left by log-tool-start.py.

Hook protocol:
- Reads JSON from stdin (toolName/tool_name, cwd)
- Writes nothing
- Exit 0 always; internal errors are logged to .claude/telemetry.log
"""

import sys
from pathlib import Path

# Add the workflow package to the path so the hook runs without installation
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "mcp-servers" / "workflow"))

from collab_workflow.hooks import run_hook

if __name__ == "__main__":
    sys.exit(run_hook("post-tool-use"))
