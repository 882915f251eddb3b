"""Clinic application for the hospital OPD backend.

This package contains the models, domain services, serializers, views
and route registrations for sessions, token queueing, prescriptions,
billing and pharmacy stock.
"""
