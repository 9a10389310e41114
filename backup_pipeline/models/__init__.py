"""
Domain schemas shared by the core, the services and the HTTP layer.
"""
