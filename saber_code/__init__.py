"""saber-code: local-model coding assistant with tool orchestration and plans."""

__version__ = "1.0.0"
