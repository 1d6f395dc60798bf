"""Controller registry: at most one reconciliation controller per owner scope.

The HTTP layer and the CLI never build controllers themselves; they ask the
registry, which starts one on first use and keeps it until released.
"""

import asyncio
import logging
from typing import Callable

from portfolio_service.engine.reconciler import ReconciliationController
from portfolio_service.engine.sources import ReconciliationError

logger = logging.getLogger(__name__)

ControllerFactory = Callable[[str], ReconciliationController]


class ControllerRegistry:
    def __init__(self, factory: ControllerFactory):
        self._factory = factory
        self._controllers: dict[str, ReconciliationController] = {}
        self._guard = asyncio.Lock()

    def owners(self) -> list[str]:
        return sorted(self._controllers)

    def peek(self, owner_id: str) -> ReconciliationController | None:
        return self._controllers.get(owner_id)

    async def get(self, owner_id: str) -> ReconciliationController:
        """Return the controller for ``owner_id``, starting it if needed.

        If the initial load fails the controller is kept (it recovers on the
        next change event) and the ReconciliationError is re-raised.
        """
        async with self._guard:
            controller = self._controllers.get(owner_id)
            if controller is not None:
                return controller
            controller = self._factory(owner_id)
            self._controllers[owner_id] = controller

        try:
            await controller.start()
        except ReconciliationError:
            logger.warning(f"[{owner_id}] Initial load failed, controller kept for retry")
            raise
        return controller

    async def release(self, owner_id: str) -> bool:
        """Tear down the controller for ``owner_id``. Returns False if none existed."""
        async with self._guard:
            controller = self._controllers.pop(owner_id, None)
        if controller is None:
            return False
        await controller.close()
        return True

    async def close_all(self) -> None:
        async with self._guard:
            controllers = list(self._controllers.values())
            self._controllers.clear()
        for controller in controllers:
            await controller.close()
        if controllers:
            logger.info(f"Closed {len(controllers)} reconciliation controllers")
