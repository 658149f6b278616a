"""Domain Event definitions.

Represents significant occurrences (remote calls, retries, settled uploads,
completed batches) that other parts of the system might react to.
"""
