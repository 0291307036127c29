from __future__ import annotations


class NotFoundError(ValueError):
    """A referenced row does not exist. Routers map this to 404, other ValueErrors to 409."""
