"""Connection and retry primitives."""
