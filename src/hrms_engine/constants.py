"""Business rule constants shared across services."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

# Working day
STANDARD_WORK_HOURS = Decimal("8")
HOURS_QUANTUM = Decimal("0.01")

# Roles
ROLE_ADMIN = "admin"
ROLE_HR = "hr"
ROLE_EMPLOYEE = "employee"
ELEVATED_ROLES = frozenset({ROLE_ADMIN, ROLE_HR})

# TOIL
TOIL_EXPIRY = timedelta(days=21)
TOIL_EXPIRING_WINDOW = timedelta(days=7)

# Message delivery
MAX_DELIVERY_RETRIES = 3
RETRY_BACKOFF = timedelta(minutes=5)
RETRY_BATCH_SIZE = 50
DELIVERY_LOG_RETENTION = timedelta(days=7)
DELETED_MESSAGE_RETENTION = timedelta(days=30)

# Retention sweeper
ASSIGNMENT_GRACE = timedelta(days=1)
SHIFT_RETENTION = timedelta(days=3)
SESSION_MAX_AGE = timedelta(days=30)

# Midnight reconciliation
AUTO_CHECKOUT_LOCATION = "Auto Check-out (Midnight)"
AUTO_CHECKOUT_NOTE = "Automatically checked out at midnight - no manual checkout recorded"
AUTO_CHECKOUT_ADMIN_NOTE = "Auto-checkout due to missing manual checkout"
MANUAL_CHECKOUT_LOCATION = "Manual Check-out"
