"""
WSGI config for the wearables backend.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'wearables.settings')

application = get_wsgi_application()
