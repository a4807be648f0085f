"""Session services: identity lookup, per-request authentication and token issuance"""
