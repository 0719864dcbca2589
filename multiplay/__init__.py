"""Server runtime for commands over durable records and real-time channels."""

__version__ = "0.1.0"
