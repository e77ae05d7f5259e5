"""
Repository Playback CLI

Commands:
- repo-playback play - Paced playback of commit history to the console
- repo-playback show - Materialize the node set of one commit
- repo-playback store import/inspect - Commit store operations
"""

__version__ = "0.1.0"
