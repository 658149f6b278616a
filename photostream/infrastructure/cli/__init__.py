"""Console (rich) implementation of the UserInterface."""
