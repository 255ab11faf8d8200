"""
Webserver Components
"""

from bullrace.webserver.app import generate_application, generate_webserver_coroutine

__all__ = ["generate_application", "generate_webserver_coroutine"]
