"""
ASGI config for checkout_site. Plain HTTP; there are no websocket routes.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "checkout_site.settings")

application = get_asgi_application()
