"""Token codec, revocation store, password hashing, errors and logging"""
