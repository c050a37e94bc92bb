from .source import PlexSource

__all__ = ["PlexSource"]
