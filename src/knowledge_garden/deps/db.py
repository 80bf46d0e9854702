"""Database dependencies.

The engine and session maker are created once in the app lifespan and kept on
app.state; requests only borrow them.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


async def get_session_maker(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_maker


SessionMakerDep = Annotated[async_sessionmaker, Depends(get_session_maker)]
