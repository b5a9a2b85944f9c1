"""
WSGI config for the medlab project.

It exposes the WSGI callable as a module-level variable named ``application``.
HTTP-only deployments use this entrypoint; push notifications need the ASGI
one in ``medlab.asgi``.
"""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'medlab.settings')

application = get_wsgi_application()
