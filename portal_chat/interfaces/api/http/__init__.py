"""HTTP interface: routers, schemas and the v1 root router."""
