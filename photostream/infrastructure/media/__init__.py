"""Media store adapters implementing the `MediaStore` interface."""
