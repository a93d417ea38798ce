"""HTTP middleware and exception handlers shared by every router."""
