from .app import build_relay_app, create_app

__all__ = ["build_relay_app", "create_app"]
