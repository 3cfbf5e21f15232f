#!/usr/bin/env python3
"""PreToolUse hook: enforce the ticket workflow, then record the tool start.

Writes and edits need the session in implementing, testing or committing;
git push and gh pr create need a completed review. Allowed calls get a
correlation record and a start event.

Hook protocol:
- Reads JSON from stdin (toolName/tool_name, toolArgs/tool_input, cwd)
- Writes {"permissionDecision": "allow"|"deny", "reason": ...} to stdout
- Exit 0 always; internal errors are logged to .claude/telemetry.log
"""

import sys
from pathlib import Path

# Add the workflow package to the path so the hook runs without installation
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "mcp-servers" / "workflow"))

from collab_workflow.hooks import run_hook

if __name__ == "__main__":
    sys.exit(run_hook("pre-tool-use"))
