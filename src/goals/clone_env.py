"""Clone environment goal."""

from actions import CloneEnvironmentAction
from goals import register_goal


@register_goal
class CloneEnv:
    """Copy an application's environment variables for later build steps.

    The result lands in the 'environment' context key. Failures never abort
    the run.
    """

    name = 'clone-env'
    description = "Read an application's environment variables"
    requires_app = True

    def get_phases(self, _params: dict) -> list[tuple[str, object, str]]:
        return [
            ('clone_env', CloneEnvironmentAction(
                name='clone-env',
            ), 'Read application environment'),
        ]
