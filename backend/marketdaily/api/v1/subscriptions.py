"""Digest subscription endpoints."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr

from marketdaily.services.container import Services
from marketdaily.api.v1.deps import get_services

router = APIRouter()


class SubscriptionRequest(BaseModel):
    email: EmailStr
    portfolio_id: uuid.UUID | None = None


class SubscriptionResponse(BaseModel):
    id: str
    email: str
    portfolio_id: str | None = None
    is_active: bool


@router.get("", response_model=list[SubscriptionResponse])
async def list_subscriptions(services: Services = Depends(get_services)):
    subscriptions = await services.subscription_store.active()
    return [
        SubscriptionResponse(
            id=str(s.id),
            email=s.email,
            portfolio_id=str(s.portfolio_id) if s.portfolio_id else None,
            is_active=s.is_active,
        )
        for s in subscriptions
    ]


@router.post("", response_model=SubscriptionResponse, status_code=201)
async def subscribe(body: SubscriptionRequest, services: Services = Depends(get_services)):
    if body.portfolio_id is not None and await services.portfolio_store.get(body.portfolio_id) is None:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    s = await services.subscription_store.subscribe(str(body.email), body.portfolio_id)
    return SubscriptionResponse(
        id=str(s.id),
        email=s.email,
        portfolio_id=str(s.portfolio_id) if s.portfolio_id else None,
        is_active=s.is_active,
    )


@router.post("/unsubscribe")
async def unsubscribe(body: SubscriptionRequest, services: Services = Depends(get_services)):
    removed = await services.subscription_store.unsubscribe(str(body.email), body.portfolio_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return {"status": "unsubscribed"}
