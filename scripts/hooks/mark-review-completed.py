#!/usr/bin/env python3
"""Mark the AI review as complete so git push / gh pr create are admitted.

Usage: mark-review-completed.py [--project-dir DIR]
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "mcp-servers" / "workflow"))

from collab_workflow.hooks import main

if __name__ == "__main__":
    sys.exit(main(["mark-review-completed"] + sys.argv[1:]))
