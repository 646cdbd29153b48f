"""Game session lobby: session/member coordination over a transactional key-value store.

The coordinator is kept free of FastAPI concerns so it can be reused by API routes and tests.
"""
