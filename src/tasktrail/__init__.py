# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""tasktrail - Event logging and activity analytics for task workspaces."""

__version__ = "0.1.0"

__all__ = ["__version__"]
