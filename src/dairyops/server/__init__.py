"""DairyOps HTTP server."""
