"""docrag: a local retrieval engine over a folder of documents."""

__version__ = "0.1.0"
