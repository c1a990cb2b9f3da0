"""Assistant backend for the CMS control panel: multi-provider chat with tool calling."""

__version__ = "0.1.0"
