"""HRMS engine: attendance, TOIL, request approvals and message delivery."""

__version__ = "0.1.0"
