"""Approval rules and status-transition engine for purchase requests."""

__version__ = "0.1.0"
