"""Loki handler that bounds every push with a request timeout."""

import sys

from logging_loki import LokiHandler
import requests


class TimeoutLokiHandler(LokiHandler):
    """
    LokiHandler whose HTTP pushes give up after ``timeout`` seconds.

    Records are shipped from the QueueListener thread; an unreachable
    VictoriaLogs endpoint must not stall it.
    """

    def __init__(self, *args, timeout: float = 10.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.timeout = timeout

    def _bound_session(self) -> None:
        """Wrap the emitter session's post once so it always carries the timeout."""
        session = self.emitter.session
        if getattr(session, "_timeout_adapter_installed", False):
            return

        # Fail fast instead of retrying against a dead endpoint
        no_retry = requests.adapters.HTTPAdapter(max_retries=0)
        for scheme in ("http://", "https://"):
            session.mount(scheme, no_retry)

        unbounded_post = session.post
        timeout = self.timeout

        def bounded_post(*args, **kwargs):
            kwargs["timeout"] = timeout
            return unbounded_post(*args, **kwargs)

        session.post = bounded_post
        session._timeout_adapter_installed = True

    def _reset_emitter(self, reason: str) -> None:
        print(f"[LOKI] {reason}", file=sys.stderr)
        close = getattr(self.emitter, "close", None)
        if close is not None:
            close()

    def emit(self, record):
        try:
            self._bound_session()
            super().emit(record)
        except requests.exceptions.Timeout:
            self._reset_emitter(f"Push timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            self._reset_emitter(f"Push failed: {e}")
        except Exception:
            self.handleError(record)
