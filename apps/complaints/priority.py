"""
Derived complaint priority.

Priority is never chosen by a client. It follows from the complaint's
category, how long it has been open and whether it is resolved, and is
recomputed every time a complaint is created, changed or read.
"""

from datetime import timedelta

from django.utils import timezone

HIGH_SEVERITY_CATEGORIES = frozenset({'electrical', 'plumbing', 'security'})
KNOWN_CATEGORIES = HIGH_SEVERITY_CATEGORIES | {'furniture', 'cleanliness', 'noise', 'other'}

ESCALATE_TO_HIGH_AFTER = timedelta(hours=48)
ESCALATE_TO_URGENT_AFTER = timedelta(hours=72)

# Ordered from least to most pressing
PRIORITY_ORDER = ('low', 'medium', 'high', 'urgent')


def base_priority(category):
    """Severity of a category before any age escalation."""
    if category not in KNOWN_CATEGORIES:
        raise ValueError(f"Unknown complaint category: {category!r}")
    return 'high' if category in HIGH_SEVERITY_CATEGORIES else 'medium'


def compute_priority(category, created_at, status, now=None):
    """
    Return the priority a complaint should currently have.

    Args:
        category: complaint category
        created_at: when the complaint was filed
        status: current complaint status
        now: reference time, defaults to timezone.now()

    Returns:
        One of 'medium', 'high' or 'urgent'
    """
    base = base_priority(category)
    if status == 'resolved':
        return base

    age = (now or timezone.now()) - created_at
    if age > ESCALATE_TO_URGENT_AFTER:
        return 'urgent'
    if age > ESCALATE_TO_HIGH_AFTER and base == 'medium':
        return 'high'
    return base


def priority_rank(priority):
    """Position of a priority in PRIORITY_ORDER, used for sorting."""
    return PRIORITY_ORDER.index(priority)
