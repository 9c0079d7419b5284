"""HTTP routers for the taskboard API."""
