"""Router exports for the catalog API."""
from . import health, imports, jobs, library

__all__ = ["health", "imports", "jobs", "library"]
