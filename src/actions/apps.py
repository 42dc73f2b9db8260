"""Application actions."""

import logging
import time
from dataclasses import dataclass

from cloud import CloudError, CloudFoundryClient, ResourceNotFoundError
from common import ActionResult, describe_error

logger = logging.getLogger(__name__)


@dataclass
class DeleteApplicationsAction:
    """Delete every application in the session space.

    An application that disappears before its delete is skipped. Any other
    delete failure stops the action, naming the application.
    """
    name: str
    context_key: str = 'deleted_applications'

    def run(self, client: CloudFoundryClient, _context: dict) -> ActionResult:
        """Delete all applications."""
        start = time.time()

        try:
            applications = client.get_applications()
        except CloudError as e:
            return ActionResult(
                success=False,
                message=f"Error while listing applications. {describe_error(e)}",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Deleting applications: {len(applications)} applications to delete.")
        deleted = []
        for app in applications:
            logger.info(f"[{self.name}] Deleting application '{app.name}'")
            try:
                client.delete_application(app.name)
            except ResourceNotFoundError:
                logger.info(f"[{self.name}] Application '{app.name}' does not exist")
                continue
            except CloudError as e:
                return ActionResult(
                    success=False,
                    message=f"Error while deleting application '{app.name}'. {describe_error(e)}",
                    duration=time.time() - start,
                    context_updates={self.context_key: deleted}
                )
            deleted.append(app.name)

        return ActionResult(
            success=True,
            message=f"Deleted {len(deleted)} applications",
            duration=time.time() - start,
            context_updates={self.context_key: deleted}
        )
