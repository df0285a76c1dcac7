"""Model Context Protocol server core: tool, prompt and resource registries, request handlers and client sessions."""

__version__ = "0.1.0"