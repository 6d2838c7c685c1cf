"""Web dashboard for wa-relay (HTTP API plus a static settings page)."""
