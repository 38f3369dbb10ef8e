"""Exceptions raised by the live reload server"""


class LiveServerError(Exception):
    """Base class for live server errors"""


class EntryNotFoundError(LiveServerError):
    """The entry HTML file does not exist or cannot be resolved"""


class WatcherError(LiveServerError):
    """The filesystem watch could not be created or was lost"""
