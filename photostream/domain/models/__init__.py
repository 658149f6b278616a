"""Domain Models: value objects and entities (assets, upload tasks, batches)."""
