"""Environment cloning action."""

import json
import logging
import time
from dataclasses import dataclass

from cloud import CloudFoundryClient
from common import ActionResult

logger = logging.getLogger(__name__)


def _env_value(value) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


@dataclass
class CloneEnvironmentAction:
    """Read an application's environment into the run context.

    Best effort: any failure is logged and yields an empty mapping so the
    surrounding build carries on. The process environment is never touched;
    callers decide how to hand the mapping to later steps.
    """
    name: str
    app_key: str = 'app_name'
    context_key: str = 'environment'

    def run(self, client: CloudFoundryClient, context: dict) -> ActionResult:
        start = time.time()
        app_name = context.get(self.app_key)

        try:
            env = client.get_application(app_name).env or {}
            mapping = {str(k): _env_value(v) for k, v in env.items()}
        except Exception as e:  # pylint: disable=broad-except
            logger.error(f"[{self.name}] Could not clone environment of application '{app_name}': {e}")
            return ActionResult(
                success=True,
                message=f"Environment of '{app_name}' not cloned",
                duration=time.time() - start,
                context_updates={self.context_key: {}}
            )

        for key in sorted(mapping):
            logger.debug(f"[{self.name}] {key}")
        logger.info(f"[{self.name}] Cloned {len(mapping)} environment variables from '{app_name}'")

        return ActionResult(
            success=True,
            message=f"Cloned {len(mapping)} variables",
            duration=time.time() - start,
            context_updates={self.context_key: mapping}
        )
