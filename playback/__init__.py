"""
Repository Playback Engine

Replays a repository's commit history as a time-paced stream of graph states.
"""

__version__ = "0.1.0"
