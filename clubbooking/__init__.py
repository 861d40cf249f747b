"""Computer club listings, computers and bookings over HTTP, on an in-memory document store."""

__version__ = "0.1.0"