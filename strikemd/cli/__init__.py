"""Command line tools for strikemd."""
