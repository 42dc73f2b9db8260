"""Route actions."""

import logging
import time
from dataclasses import dataclass

from cloud import CloudError, CloudFoundryClient, RouteCleanupError
from common import ActionResult, describe_error

logger = logging.getLogger(__name__)


@dataclass
class DeleteOrphanedRoutesAction:
    """Delete routes not bound to any application."""
    name: str
    context_key: str = 'deleted_routes'

    def run(self, client: CloudFoundryClient, _context: dict) -> ActionResult:
        """Delete orphaned routes, reporting each one deleted."""
        start = time.time()

        try:
            routes = client.delete_orphaned_routes()
        except RouteCleanupError as e:
            for route in e.deleted:
                logger.info(f"[{self.name}] Deleted route '{route.name}'")
            return ActionResult(
                success=False,
                message=(
                    f"Error while deleting route '{e.route.name}' "
                    f"({len(e.deleted)} orphaned routes deleted before it). {describe_error(e.cause)}"
                ),
                duration=time.time() - start,
                context_updates={self.context_key: [r.name for r in e.deleted]}
            )
        except CloudError as e:
            return ActionResult(
                success=False,
                message=f"Error while looking up orphaned routes. {describe_error(e)}",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Deleting orphaned routes: {len(routes)} routes deleted.")
        for route in routes:
            logger.info(f"[{self.name}] Deleted route '{route.name}'")

        return ActionResult(
            success=True,
            message=f"Deleted {len(routes)} orphaned routes",
            duration=time.time() - start,
            context_updates={self.context_key: [r.name for r in routes]}
        )
