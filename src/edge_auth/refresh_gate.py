"""Rate limiting for forced JWKS re-fetches.

A token carrying an unknown ``kid`` forces a fresh download of the key set,
since the provider may have rotated keys. Without a limit, anyone could make
every request trigger an outbound JWKS fetch by sending random kids.

One forced re-fetch is allowed per cooldown. Throttled attempts fail
verification and are counted; every ``warn_every``-th one is logged.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Final

logger = logging.getLogger(__name__)

_DEFAULT_COOLDOWN: Final[float] = 60.0
_DEFAULT_WARN_EVERY: Final[int] = 40


class RefreshGate:
    """Cooldown between forced JWKS re-fetches, shared by all threads.

    Example:
        ```python
        gate = RefreshGate(cooldown=30.0)
        if gate.allow():
            keys = client.get_signing_keys(refresh=True)
        ```
    """

    def __init__(
        self,
        cooldown: float = _DEFAULT_COOLDOWN,
        warn_every: int = _DEFAULT_WARN_EVERY,
    ) -> None:
        """
        Raises:
            ValueError: If ``cooldown`` is not positive or ``warn_every`` < 1.
        """
        if cooldown <= 0:
            raise ValueError(f"cooldown must be positive, got {cooldown}")
        if warn_every < 1:
            raise ValueError(f"warn_every must be at least 1, got {warn_every}")

        self._cooldown = cooldown
        self._warn_every = warn_every
        self._guard = threading.Lock()
        self._last_refresh_at: float | None = None
        self._throttled = 0

    @property
    def denied(self) -> int:
        """Attempts throttled since the last allowed re-fetch."""
        return self._throttled

    def allow(self) -> bool:
        """Claim the next forced re-fetch, if the cooldown has passed."""
        now = time.time()

        with self._guard:
            last = self._last_refresh_at
            if last is None or now - last >= self._cooldown:
                self._last_refresh_at = now
                self._throttled = 0
                return True

            self._throttled += 1
            if self._throttled % self._warn_every == 0:
                logger.warning("JWKS refresh throttled", extra={"denied_attempts": self._throttled})
            return False
