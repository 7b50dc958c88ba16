"""
Loyalty endpoints: reward tiers and the current user's point summary.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import auth, cache, crud, models, schemas
from ..config import POINTS_BLOCK_VALUE, POINTS_REDEMPTION_BLOCK
from ..database import get_db
from ..pricing import classify_tier

router = APIRouter(prefix="/rewards", tags=["Rewards"])


@router.get("/tiers", response_model=List[schemas.RewardTier])
def list_tiers(db: Session = Depends(get_db)):
    """Active reward tiers ordered by minimum points. Cached in Redis."""
    cached = cache.get_cache(cache.TIERS_KEY)
    if cached is not None:
        return cached
    tiers = [schemas.RewardTier.model_validate(t) for t in crud.get_active_tiers(db)]
    cache.set_cache(cache.TIERS_KEY, [t.model_dump(mode="json") for t in tiers], ttl=cache.TIERS_CACHE_TTL)
    return tiers


@router.get("/me", response_model=schemas.RewardSummary)
def my_rewards(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """
    Point balance, current and next tier, redeemable value and recent ledger entries.

    The balance is the sum of the user's ledger; the tier is derived from it.
    """
    balance = crud.get_reward_balance(db, current_user.id)
    tier, next_tier = classify_tier(crud.get_active_tiers(db), balance)
    redeemable_value = (max(balance, 0) // POINTS_REDEMPTION_BLOCK) * POINTS_BLOCK_VALUE
    return schemas.RewardSummary(
        balance=balance,
        tier=schemas.RewardTier.model_validate(tier) if tier else None,
        next_tier=schemas.RewardTier.model_validate(next_tier) if next_tier else None,
        points_to_next_tier=(next_tier.min_points - balance) if next_tier else None,
        redeemable_value=redeemable_value,
        history=[schemas.RewardEntry.model_validate(e) for e in crud.get_reward_history(db, current_user.id)],
    )
