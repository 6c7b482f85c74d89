"""Command line client for the Mediadex catalog API."""
