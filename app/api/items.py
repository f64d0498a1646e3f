from fastapi import APIRouter, Depends, HTTPException

from app.models.items import SearchRequest, SearchResponse
from app.services.semantic_matcher import EmbeddingConfigError, SemanticMatcher, get_matcher
from app.scripts.logging_config import get_logger

logger = get_logger("items")

router = APIRouter(prefix="/items", tags=["items"])


@router.post("/search", response_model=SearchResponse)
def search_items(req: SearchRequest, matcher: SemanticMatcher = Depends(get_matcher)):
    opts = matcher.options(limit=req.limit, min_score=req.min_score)
    try:
        outcome = matcher.run(req.query, opts)
    except EmbeddingConfigError as e:
        logger.error("items.search config_error err=%s", e)
        raise HTTPException(status_code=503, detail="embedding_not_configured")
    results = [m.to_scored_item() for m in outcome.matches]
    return SearchResponse(query=req.query, mode=outcome.mode, results=results)
