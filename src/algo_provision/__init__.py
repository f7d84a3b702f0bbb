"""Provisioning pipeline for Algo paging and intercom endpoints."""

__version__ = "0.1.0"
