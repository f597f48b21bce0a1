"""Registry access: references, transport, manifest client and digest fetching."""
