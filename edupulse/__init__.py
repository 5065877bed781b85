from .app import app, create_app, init_database

__all__ = ["app", "create_app", "init_database"]
