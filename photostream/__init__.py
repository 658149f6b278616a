"""PhotoStream: batch upload, metadata update, caching and rate limiting over a hosted media store."""

__version__ = "0.1.0"
