"""Error taxonomy shared by services, the search core and the HTTP layer."""
from __future__ import annotations


class ProjectBoardError(Exception):
    """Base class for all application errors."""
    code = "error"


class NotFoundError(ProjectBoardError):
    """Referenced entity does not exist."""
    code = "not_found"


class UnauthorizedError(ProjectBoardError):
    """Acting identity does not own the entity being mutated."""
    code = "unauthorized"


class ValidationError(ProjectBoardError):
    """Malformed filter, tag list, cursor or lookup value."""
    code = "validation_error"


class StoreError(ProjectBoardError):
    """The relational store rejected or failed a statement."""
    code = "store_error"


class SearchIndexError(ProjectBoardError):
    """The external search index call failed."""
    code = "search_index_error"
