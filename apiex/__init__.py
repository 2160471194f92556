"""api-ex - replay parameterized HTTP/GraphQL requests against named environments."""

__version__ = "0.3.0"
