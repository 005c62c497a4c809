"""Scheduled maintenance jobs."""

from .reconcile import register_scheduler, run_reconcile_once

__all__ = ["register_scheduler", "run_reconcile_once"]
