"""Web interface package"""

from pairing_service.interfaces.web.server import WebInterface, create_app

__all__ = ['WebInterface', 'create_app']
