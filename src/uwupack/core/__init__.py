"""Low-level part I/O (writer, finalizer, streaming codecs)."""
