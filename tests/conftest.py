from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _detach_event_sink():
    """Keep the module-level event sink from leaking between tests."""
    import gridcalc.logging.events as mod

    old_sink, old_dir = mod._sink, mod._log_dir
    mod._sink = None
    mod._log_dir = None
    try:
        yield
    finally:
        mod._sink, mod._log_dir = old_sink, old_dir
