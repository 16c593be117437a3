"""Mini AI App Builder backend."""
