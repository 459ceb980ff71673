"""
WSGI config for the payment orchestration service.

Served by gunicorn in deployment (gunicorn config.wsgi:application). Provider
webhooks and the REST API are plain synchronous request/response handlers,
so WSGI is the only server interface exposed.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
