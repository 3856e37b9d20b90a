"""HTTP status API routers."""
