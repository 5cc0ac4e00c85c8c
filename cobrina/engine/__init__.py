# cobrina/engine/__init__.py
from .scoring import classify, compute_scores, normalize_failures, resolve_failure_spec, submit_audit
from .lifecycle import classify_by_date, derive_state, determine_close_state, is_terminal, paid_to_date
