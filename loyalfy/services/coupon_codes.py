"""
Coupon code providers.

``LocalCouponCodeProvider`` mints codes locally. ``SallaCouponCodeProvider``
creates the coupon on the merchant's store through the platform API so the
code is redeemable at checkout.
"""

import logging
import secrets
import time
from datetime import datetime

import httpx
from sqlalchemy.orm import Session

from loyalfy import config
from loyalfy.exceptions import UpstreamCouponError
from loyalfy.models.coupon import Coupon


logger = logging.getLogger(__name__)


class LocalCouponCodeProvider:
    def __init__(self, prefix: str | None = None, *, max_tries: int = 10):
        self.prefix = prefix or config.COUPON_CODE_PREFIX
        self.max_tries = max_tries

    def _draw(self) -> str:
        return f"{self.prefix}{secrets.token_hex(3).upper()}"

    def create_code(self, db: Session, merchant, reward, *, starts_at: datetime, expires_at: datetime) -> str:
        for _ in range(self.max_tries):
            code = self._draw()
            taken = db.query(Coupon.id).filter(Coupon.code == code).first()
            if not taken:
                return code
        raise UpstreamCouponError("Could not draw a unique coupon code", attempts=self.max_tries)


def map_reward_to_coupon_payload(reward) -> dict:
    """Translate a reward rule into the platform's coupon fields."""
    amount = float(reward.reward_value or 0)
    reward_type = reward.reward_type

    if reward_type in ("percentage", "discountOrderPercent"):
        return {"type": "percentage", "amount": amount, "maximum_amount": 999999, "free_shipping": False}
    if reward_type in ("fixed", "discountOrderPrice", "cashback"):
        return {"type": "fixed", "amount": amount, "maximum_amount": None, "free_shipping": False}
    if reward_type in ("shipping", "discountShipping"):
        return {"type": "fixed", "amount": amount, "maximum_amount": None, "free_shipping": True}

    return {"type": "percentage", "amount": amount, "maximum_amount": 999999, "free_shipping": False}


class SallaCouponCodeProvider:
    _RETRYABLE_STATUS = {429, 500, 502, 503, 504}

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        prefix: str | None = None,
        client: httpx.Client | None = None,
        sleep=time.sleep,
    ):
        self.base_url = (base_url or config.SALLA_API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.UPSTREAM_TIMEOUT_SECONDS
        self.max_attempts = max(1, max_attempts or config.UPSTREAM_MAX_ATTEMPTS)
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else config.UPSTREAM_BACKOFF_SECONDS
        self.prefix = prefix or config.COUPON_CODE_PREFIX
        self._client = client
        self._sleep = sleep

    def _post(self, client: httpx.Client, access_token: str, body: dict) -> httpx.Response:
        return client.post(
            f"{self.base_url}/coupons",
            json=body,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=self.timeout,
        )

    def create_code(self, db: Session, merchant, reward, *, starts_at: datetime, expires_at: datetime) -> str:
        if not merchant.access_token:
            raise UpstreamCouponError("Merchant has no platform access token")

        body = {
            "code": f"{self.prefix}{secrets.token_hex(3).upper()}",
            "start_date": starts_at.date().isoformat(),
            "expiry_date": expires_at.date().isoformat(),
            "exclude_sale_products": False,
            "is_apply_with_offer": True,
            **map_reward_to_coupon_payload(reward),
        }

        client = self._client or httpx.Client()
        last_error = None
        last_status = None
        try:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    response = self._post(client, merchant.access_token, body)
                except httpx.TransportError as e:
                    last_error = f"{type(e).__name__}: {e}"
                    last_status = None
                else:
                    if response.is_success:
                        code = ((response.json() or {}).get("data") or {}).get("code")
                        if not code:
                            raise UpstreamCouponError(
                                "Platform did not return a coupon code",
                                status_code=response.status_code,
                                attempts=attempt,
                            )
                        return code

                    last_status = response.status_code
                    last_error = f"HTTP {response.status_code}: {response.text[:500]}"
                    if response.status_code not in self._RETRYABLE_STATUS:
                        raise UpstreamCouponError(
                            f"Failed to create coupon: {last_error}",
                            status_code=last_status,
                            attempts=attempt,
                        )

                logger.warning(
                    "coupon creation attempt failed",
                    extra={"attempt": attempt, "max_attempts": self.max_attempts, "error": last_error},
                )
                if attempt < self.max_attempts:
                    self._sleep(self.backoff_seconds * (2 ** (attempt - 1)))
        finally:
            if self._client is None:
                client.close()

        raise UpstreamCouponError(
            f"Failed to create coupon after {self.max_attempts} attempts: {last_error}",
            status_code=last_status,
            attempts=self.max_attempts,
        )


def get_coupon_code_provider():
    if config.COUPON_CODE_PROVIDER == "salla":
        return SallaCouponCodeProvider()
    return LocalCouponCodeProvider()
