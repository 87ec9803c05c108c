"""FastAPI dependency injection for the arcade."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from roundhouse.core.arcade import Arcade


async def get_arcade(request: Request) -> Arcade:
    """Get the arcade from app state."""
    return request.app.state.arcade


ArcadeDep = Annotated[Arcade, Depends(get_arcade)]
