"""Kafka wire encoding, record batches, request encoders and a batching writer."""

__version__ = "0.1.0"

__all__ = [
    "codecs",
    "partition",
    "records",
    "requests",
    "stats",
    "syncgroup",
    "timeutil",
    "wire",
    "writer",
]