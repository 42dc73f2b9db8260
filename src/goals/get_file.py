"""Get file goal."""

from actions import FetchInstanceFilesAction
from goals import register_goal


@register_goal
class GetFile:
    """Download a file from each instance of an application.

    Params: filepath (required), destpath, mandatory.
    """

    name = 'get-file'
    description = 'Download a file from every application instance'
    requires_app = True
    required_params = ['filepath']

    def get_phases(self, _params: dict) -> list[tuple[str, object, str]]:
        return [
            ('fetch_files', FetchInstanceFilesAction(
                name='get-file',
            ), 'Fetch file from instances'),
        ]
