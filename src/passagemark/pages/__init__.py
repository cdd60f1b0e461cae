"""NiceGUI pages for passagemark.

Import this module to register all page routes with NiceGUI.
"""

from passagemark.pages import exam, index

__all__ = ["exam", "index"]

# These imports register @ui.page decorators as a side effect.
_PAGES = (exam, index)
