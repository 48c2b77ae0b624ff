"""Service registry for breaking circular imports.

This module holds the application services so that routes can import them
without causing circular imports with the main module.
"""

# Global services instance - set by main.py during initialization
services = None


def set_services(services_instance):
    """Set the global services instance."""
    global services
    services = services_instance


def get_services():
    """Get the global services instance."""
    if services is None:
        raise RuntimeError("Services not initialized. Did you call set_services?")
    return services
