"""FastAPI dependencies."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from clip_archiver.adapters.clips import ClipsAdapter, get_clips_adapter
from clip_archiver.db.session import get_session

# Database session dependency
SessionDep = Annotated[Session, Depends(get_session)]


async def get_adapter() -> AsyncGenerator[ClipsAdapter, None]:
    """Get the configured clips adapter, closed when the request ends."""
    adapter = get_clips_adapter()
    try:
        yield adapter
    finally:
        await adapter.close()


ClipsAdapterDep = Annotated[ClipsAdapter, Depends(get_adapter)]
