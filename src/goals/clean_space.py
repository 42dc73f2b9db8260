"""Clean space goal.

Removes every application, every service instance and every orphaned route
from the session space.
"""

from actions import DeleteApplicationsAction, DeleteOrphanedRoutesAction, DeleteServicesAction
from goals import register_goal


@register_goal
class CleanSpace:
    """Empty the session space."""

    name = 'clean-space'
    description = 'Delete all applications, services and orphaned routes in the space'
    requires_confirmation = True  # Destructive goal

    def get_phases(self, _params: dict) -> list[tuple[str, object, str]]:
        return [
            ('delete_apps', DeleteApplicationsAction(
                name='delete-apps',
            ), 'Delete applications'),
            ('delete_services', DeleteServicesAction(
                name='delete-services',
            ), 'Delete service instances'),
            ('delete_routes', DeleteOrphanedRoutesAction(
                name='delete-orphaned-routes',
            ), 'Delete orphaned routes'),
        ]
