"""Command implementations behind the ``knotwork`` CLI."""
