"""Single-table data access and real-time delivery for the marketplace backend."""

__version__ = "0.1.0"
