"""Application package for the workshop companion backend.

This package exposes the service, repository and model modules used by
the FastAPI application: team progress through the eight workshop
phases, templated AI prompts, and the cohort showcase vote. Individual
modules contain the concrete implementations and documentation.
"""
