"""Document store exceptions."""


class StoreError(Exception):
    """A read, write or batch commit against the document store failed."""


class DocumentNotFoundError(StoreError):
    """An update targeted a document that does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"No document to update: {path}")
        self.path = path


class InvalidPathError(StoreError, ValueError):
    """A path does not address a document (or a collection) as required."""
