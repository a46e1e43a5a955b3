from mpilot.api.app import create_app, create_router

__all__ = ["create_app", "create_router"]
