"""Read-only query surface for dashboards and chat commands."""
