"""Remote file retrieval actions."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cloud import CloudError, CloudFoundryClient, ResourceNotFoundError
from common import ActionResult, describe_error

logger = logging.getLogger(__name__)


def default_destpath(app_name: str, filepath: str) -> Path:
    """target/<app>_<filepath>, with the remote path's leading slash dropped."""
    return Path('target') / f"{app_name}_{filepath.lstrip('/')}"


def instance_destination(destpath: Path, index: int) -> Path:
    """Per-instance file next to destpath: <parent>/instance_<index>_<name>."""
    return destpath.parent / f"instance_{index}_{destpath.name}"


@dataclass
class FetchInstanceFilesAction:
    """Download a file from every instance of an application.

    Context inputs: app name (app_key), 'filepath', optional 'destpath' and
    'mandatory'. A missing application always fails. Other remote or local
    write errors fail only when mandatory; otherwise they are logged as
    warnings.
    """
    name: str
    app_key: str = 'app_name'
    context_key: str = 'fetched_files'

    def run(self, client: CloudFoundryClient, context: dict) -> ActionResult:
        """Fetch the file from each instance."""
        start = time.time()

        app_name = context.get(self.app_key)
        filepath: Optional[str] = context.get('filepath')
        if not filepath:
            return ActionResult(
                success=False,
                message="filepath is required",
                duration=time.time() - start
            )
        mandatory = bool(context.get('mandatory', False))
        destpath = Path(context['destpath']) if context.get('destpath') else default_destpath(app_name, filepath)

        try:
            destpath.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return ActionResult(
                success=False,
                message=f"Unable to create directory {destpath.parent}: {e}",
                duration=time.time() - start
            )

        fetched = []
        try:
            instances = client.get_application_instances(app_name).instances
            logger.info(f"[{self.name}] Fetching '{filepath}' from {len(instances)} instances of '{app_name}'")
            for instance in instances:
                content = client.get_file(app_name, instance.index, filepath)
                dest = instance_destination(destpath, instance.index)
                dest.write_bytes(content)
                logger.info(f"[{self.name}] Instance {instance.index}: wrote {dest}")
                fetched.append(str(dest))
        except ResourceNotFoundError as e:
            return ActionResult(
                success=False,
                message=f"Application '{app_name}' does not exist. {describe_error(e)}",
                duration=time.time() - start,
                context_updates={self.context_key: fetched}
            )
        except (CloudError, OSError) as e:
            message = f"Error while getting file '{filepath}' of application '{app_name}'. {describe_error(e)}"
            if mandatory:
                return ActionResult(
                    success=False,
                    message=message,
                    duration=time.time() - start,
                    context_updates={self.context_key: fetched}
                )
            logger.warning(f"[{self.name}] {message}")
            return ActionResult(
                success=True,
                message=f"Fetched {len(fetched)} files (non-mandatory failure ignored)",
                duration=time.time() - start,
                context_updates={self.context_key: fetched}
            )

        return ActionResult(
            success=True,
            message=f"Fetched {len(fetched)} files",
            duration=time.time() - start,
            context_updates={self.context_key: fetched}
        )
