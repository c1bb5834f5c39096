import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from loyalfy import config
from loyalfy.db import engine, Base

from loyalfy.models.merchant import Merchant
from loyalfy.models.customer import Customer
from loyalfy.models.reward import Reward
from loyalfy.models.coupon import Coupon
from loyalfy.models.customer_loyalty_activity import CustomerLoyaltyActivity
from loyalfy.models.applied_reward import AppliedReward
from loyalfy.models.notification_outbox import NotificationOutbox
from loyalfy.models.processed_event import ProcessedEvent

from loyalfy.routes.events import router as events_router
from loyalfy.routes.merchants import router as merchants_router
from loyalfy.routes.rewards import router as rewards_router
from loyalfy.routes.customers import router as customers_router
from loyalfy.routes.coupons import router as coupons_router
from loyalfy.routes.admin import router as admin_router


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or config.LOG_LEVEL),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


app = FastAPI(title="Loyalfy Loyalty Engine")

# ─── CORS ─────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "https://localhost:3000",
        "http://127.0.0.1:3000",
        "https://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup():
    configure_logging()
    Base.metadata.create_all(bind=engine)


app.include_router(events_router)
app.include_router(merchants_router)
app.include_router(rewards_router)
app.include_router(customers_router)
app.include_router(coupons_router)
app.include_router(admin_router)


@app.get("/")
def read_root():
    return {"message": "Loyalfy loyalty engine is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8001, reload=True)
