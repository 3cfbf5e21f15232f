#!/usr/bin/env python3
"""PostToolUseFailure hook: queue a failed tool end event.

The error text is truncated to 500 characters.

Hook protocol:
- Reads JSON from stdin (toolName/tool_name, error, cwd)
- Writes nothing
- Exit 0 always; internal errors are logged to .claude/telemetry.log
"""

import sys
from pathlib import Path

# Add the workflow package to the path so the hook runs without installation
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "mcp-servers" / "workflow"))

from collab_workflow.hooks import run_hook

if __name__ == "__main__":
    sys.exit(run_hook("post-tool-use-failure"))
