"""Core application for the medlab backend.

This package holds the models, serializers, services, views and routes
for test ordering, lab result review and patient result release.
"""
