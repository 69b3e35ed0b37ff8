"""Pure functions turning probe output into media descriptors."""
