"""Gateway routing of messages between chat accounts, with webhook clients and XMPP helpers."""

__version__ = "1.25.3.dev0"
__all__ = ["__version__"]