from fastapi import Depends, Request

from app.database import get_db
from app.services.context import SearchContext

DBSession = Depends(get_db)


def get_search_context(request: Request) -> SearchContext:
    return request.app.state.search_context


SearchContextDep = Depends(get_search_context)
