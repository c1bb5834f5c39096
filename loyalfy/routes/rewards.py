from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from loyalfy.db import get_db
from loyalfy.deps.merchant import get_active_merchant
from loyalfy.models.merchant import Merchant
from loyalfy.models.reward import Reward
from loyalfy.schemas.reward import RewardCreate, RewardOut, RewardUpdate


router = APIRouter(prefix="/rewards", tags=["rewards"])


def _get_owned_reward(db: Session, merchant: Merchant, reward_id: UUID) -> Reward:
    reward = db.query(Reward).filter(Reward.id == reward_id).first()
    if not reward or reward.merchant_id != merchant.id:
        raise HTTPException(status_code=404, detail="Reward not found")
    return reward


@router.get("", response_model=list[RewardOut])
def list_rewards(
    active: bool | None = None,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    q = db.query(Reward).filter(Reward.merchant_id == merchant.id)
    if active is not None:
        q = q.filter(Reward.is_active.is_(active))
    return q.order_by(Reward.created_at.desc()).all()


@router.post("", response_model=RewardOut)
def create_reward(
    payload: RewardCreate,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    data = payload.model_dump(exclude_none=True)
    reward = Reward(merchant_id=merchant.id, **data)
    db.add(reward)
    db.commit()
    db.refresh(reward)
    return reward


@router.get("/{reward_id}", response_model=RewardOut)
def get_reward(
    reward_id: UUID,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    return _get_owned_reward(db, merchant, reward_id)


@router.patch("/{reward_id}", response_model=RewardOut)
def update_reward(
    reward_id: UUID,
    payload: RewardUpdate,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    reward = _get_owned_reward(db, merchant, reward_id)

    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(reward, k, v)

    db.commit()
    db.refresh(reward)
    return reward


@router.delete("/{reward_id}")
def delete_reward(
    reward_id: UUID,
    merchant: Merchant = Depends(get_active_merchant),
    db: Session = Depends(get_db),
):
    reward = _get_owned_reward(db, merchant, reward_id)

    # issued coupons keep pointing at the rule: deactivate instead of deleting
    reward.is_active = False
    reward.enabled = False
    db.commit()
    return {"deleted": True}
