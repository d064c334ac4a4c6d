"""uwupack: pack a directory tree into size-bounded parts plus a manifest."""

__version__ = "0.1.0"
