"""Command line interface for blobstream."""
