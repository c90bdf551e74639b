"""ProjectPilot: turns agent tool calls into project board and repository changes."""

__version__ = "0.1.0"
