"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (media store API, Redis,
local disk, console, HTTP) by implementing the interfaces defined in the
domain layer.
"""
