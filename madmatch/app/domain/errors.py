from __future__ import annotations


class RecipeSourceError(Exception):
    pass


class SourceUnavailableError(RecipeSourceError):
    def __init__(self, source_id: str, reason: str):
        super().__init__(f"Recipe source {source_id} unavailable: {reason}")
        self.source_id = source_id
        self.reason = reason


class QuotaExceededError(SourceUnavailableError):
    def __init__(self, source_id: str, reason: str = "API quota exceeded"):
        super().__init__(source_id, reason)


class AuthInvalidError(SourceUnavailableError):
    def __init__(self, source_id: str, reason: str = "Invalid API key"):
        super().__init__(source_id, reason)


class RecipeWriteError(RecipeSourceError):
    def __init__(self, title: str, reason: str):
        super().__init__(f"Failed to save recipe {title!r}: {reason}")
        self.title = title
        self.reason = reason
