"""
Shipping zone listing and shipping cost quotes.
"""
from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..database import get_db
from ..pricing import shipping_quote

router = APIRouter(prefix="/shipping", tags=["Shipping"])


@router.get("/zones", response_model=schemas.ShippingZones)
def list_zones(db: Session = Depends(get_db)):
    """Active shipping zones, flat and grouped by region."""
    zones = [schemas.ShippingZone.model_validate(z) for z in crud.get_shipping_zones(db)]
    grouped = defaultdict(list)
    for zone in zones:
        grouped[zone.region or "Other"].append(zone)
    return schemas.ShippingZones(zones=zones, grouped=dict(grouped))


@router.post("/calculate", response_model=schemas.ShippingQuote)
def calculate_shipping(request: schemas.ShippingQuoteRequest, db: Session = Depends(get_db)):
    """
    Quote the shipping cost for a zone and parcel weight.

    Raises:
        HTTPException: 404 if the zone is missing or inactive
    """
    zone = crud.get_shipping_zone(db, request.zone_id)
    if zone is None:
        raise HTTPException(status_code=404, detail="Shipping zone not found")
    return schemas.ShippingQuote(
        zone_name=zone.name,
        district=zone.district,
        distance_km=zone.distance_km,
        shipping_cost=shipping_quote(zone, request.weight_kg),
        estimated_days=zone.estimated_days,
    )
