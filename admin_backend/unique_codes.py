"""
Collision-free numeric codes shared by every replica in a replica set.
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from admin_backend.errors import CodeGenerationError
from admin_backend.persistence.port import Repository

logger = logging.getLogger(__name__)


class UniqueCodeGenerator:
    """Draws random fixed-width codes until one is unused by ``repository``."""

    def __init__(
        self,
        repository: Repository,
        digits: int = 10,
        max_attempts: int = 100,
        rng: Optional[random.Random] = None,
    ):
        if digits < 1:
            raise ValueError("digits must be positive")
        self.repository = repository
        self.low = 10 ** (digits - 1)
        self.high = 10**digits - 1
        self.max_attempts = max_attempts
        self._rng = rng or random.SystemRandom()

    def candidate(self) -> int:
        return self._rng.randint(self.low, self.high)

    async def generate(self) -> int:
        for attempt in range(1, self.max_attempts + 1):
            code = self.candidate()
            if not await self.repository.exists({"unique_code": code}):
                if attempt > 1:
                    logger.debug("Unique code found after %d attempts", attempt)
                return code
        entity = self.repository.record_type.__name__
        logger.error(
            "Exhausted %d attempts generating a unique code for %s",
            self.max_attempts,
            entity,
        )
        raise CodeGenerationError(
            f"Failed to generate unique code for {entity} after "
            f"{self.max_attempts} attempts"
        )
