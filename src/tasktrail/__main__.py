# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Allow ``python -m tasktrail``."""

from tasktrail.cli.app import app

app()
