from fastapi import Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from loyalfy.db import get_db
from loyalfy.models.merchant import Merchant


def get_active_merchant(
    merchant_query: str | None = Query(default=None, alias="merchant"),
    x_merchant: str | None = Header(default=None, alias="X-Merchant"),
    db: Session = Depends(get_db),
) -> Merchant:
    active = x_merchant or merchant_query
    if not active:
        raise HTTPException(
            status_code=400,
            detail="Missing merchant context. Provide X-Merchant header or merchant query param.",
        )

    merchant = (
        db.query(Merchant)
        .filter(Merchant.merchant_id == active)
        .filter(Merchant.is_active.is_(True))
        .first()
    )
    if not merchant:
        raise HTTPException(status_code=404, detail="Merchant not found")
    return merchant
