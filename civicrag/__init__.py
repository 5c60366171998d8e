"""civicrag: chunking and hybrid retrieval for municipal documents."""

__version__ = "0.1.0"
