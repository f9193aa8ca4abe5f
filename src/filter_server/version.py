"""Stores the version of filter_server."""

version = "1.2.1"
