# services/side_effects.py
"""
Error boundary for best-effort work that runs after a committed mutation:
receipt e-mails, status SMS, overpayment auto-settlement.

A failure here is logged and handed back as a warning string; it never
propagates, so it cannot be mistaken for a failed financial transaction.
"""
import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


def run_best_effort(label: str, func: Callable, *args, warnings: Optional[List[str]] = None, **kwargs):
     """
     Call ``func(*args, **kwargs)``; on any exception log it, append a
     warning to ``warnings`` (when given) and return None.
     """
     try:
          return func(*args, **kwargs)
     except Exception as e:
          logger.warning("%s failed: %s", label, e, exc_info=True)
          if warnings is not None:
               warnings.append(f"{label} failed: {e}")
          return None
