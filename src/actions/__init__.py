"""Reusable goal actions."""

from actions.apps import DeleteApplicationsAction
from actions.services import DeleteServicesAction
from actions.routes import DeleteOrphanedRoutesAction
from actions.env import CloneEnvironmentAction
from actions.file import FetchInstanceFilesAction, default_destpath, instance_destination

__all__ = [
    'DeleteApplicationsAction',
    'DeleteServicesAction',
    'DeleteOrphanedRoutesAction',
    'CloneEnvironmentAction',
    'FetchInstanceFilesAction',
    'default_destpath',
    'instance_destination',
]
