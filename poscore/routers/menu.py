from fastapi import APIRouter, Depends

from poscore.deps import get_repo, require_auth
from poscore.schemas.catalog import ItemModifiersOut
from poscore.services.repository import SqlRepository

router = APIRouter(prefix="/menu", tags=["menu"])


@router.get("/items/{item_id}/modifiers", response_model=ItemModifiersOut)
def item_modifiers(item_id: str, repo: SqlRepository = Depends(get_repo), sub: str = Depends(require_auth)):
    """Item plus its modifier groups in display order; the POS opens the modifier step when non-empty."""
    item = repo.fetch_item(item_id)
    return ItemModifiersOut(item=item, groups=repo.fetch_item_modifiers(item_id))
