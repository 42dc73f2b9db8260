"""Service instance actions."""

import logging
import time
from dataclasses import dataclass

from cloud import CloudError, CloudFoundryClient, ResourceNotFoundError
from common import ActionResult, describe_error

logger = logging.getLogger(__name__)


@dataclass
class DeleteServicesAction:
    """Delete every service instance in the session space.

    A service that no longer exists is a no-op, not a failure.
    """
    name: str
    context_key: str = 'deleted_services'

    def run(self, client: CloudFoundryClient, _context: dict) -> ActionResult:
        """Delete all services."""
        start = time.time()

        try:
            services = client.get_services()
        except CloudError as e:
            return ActionResult(
                success=False,
                message=f"Error while listing services. {describe_error(e)}",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Deleting services: {len(services)} services to delete.")
        deleted = []
        for service in services:
            logger.info(f"[{self.name}] Deleting service '{service.name}'")
            try:
                client.delete_service(service.name)
            except ResourceNotFoundError:
                logger.info(f"[{self.name}] Service '{service.name}' does not exist")
                continue
            except CloudError as e:
                return ActionResult(
                    success=False,
                    message=f"Error while deleting service '{service.name}'. {describe_error(e)}",
                    duration=time.time() - start,
                    context_updates={self.context_key: deleted}
                )
            deleted.append(service.name)

        return ActionResult(
            success=True,
            message=f"Deleted {len(deleted)} services",
            duration=time.time() - start,
            context_updates={self.context_key: deleted}
        )
