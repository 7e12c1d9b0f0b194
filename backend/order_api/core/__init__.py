"""
Application wiring: dependencies, error handlers, CORS and lifespan.
"""
