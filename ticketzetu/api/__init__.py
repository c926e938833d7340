"""HTTP layer: routers, dependencies and the response envelope."""
