"""
Version information for docsmith.

This file is the single source of truth for version numbers.
The web app reads it for the footer and /health.
"""

__version__ = "0.1.0"
__version_info__ = (0, 1, 0)

# Build metadata (set by CI/CD or manually)
BUILD_DATE = "2026-10-17"
GIT_COMMIT = None
