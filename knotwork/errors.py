"""Exception types raised by knotwork.

Content problems (broken diverts, unrecognized lines, missing media) are never
raised; they are reported as data. These exceptions cover programmer errors and
rejected edits.
"""


class KnotworkError(Exception):
    """Base class for all knotwork errors."""


class DuplicateNameError(KnotworkError):
    """A knot or stitch name is already taken in its scope."""

    def __init__(self, name: str, scope: str = "document"):
        self.name = name
        self.scope = scope
        super().__init__(f"Name '{name}' already exists in {scope}")


class InvalidNameError(KnotworkError, ValueError):
    """A knot, stitch or region name does not match the identifier grammar."""


class KnotNotFoundError(KnotworkError, LookupError):
    """No knot with the given name exists in the document."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Knot '{name}' not found")


class ItemNotFoundError(KnotworkError, LookupError):
    """No content item with the given id exists in the tree."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item '{item_id}' not found")


class InvalidAddressError(KnotworkError, ValueError):
    """An insertion address does not point into the content tree."""


class ConfigError(KnotworkError, ValueError):
    """The project configuration file is malformed."""
