"""
Read-only catalog and counterparty reference data plus deterministic pricing.

Products, supplier profiles and the material substitution table are shared
by every negotiation and never mutated; per-negotiation state works on fresh
copies handed out by :func:`create_counterparty_config`.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from .exceptions import CatalogError
from .models import LineItemRequest, LineOffer, MaterialSubstitution, WireModel

logger = logging.getLogger(__name__)


# ===== PRODUCTS =====

class Component(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    name: str
    composition: Optional[str] = None
    function: Optional[str] = None


class Product(WireModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    description: str = ""
    target_fob: float = Field(..., gt=0)
    components: List[Component] = Field(default_factory=list)


DEFAULT_PRODUCTS: Dict[str, Product] = {
    p.code: p
    for p in (
        Product(
            code="FSH013",
            name="Pulse Pro High-Top",
            description="Premium materials with elevated padding.",
            target_fob=14.49,
            components=[
                Component(type="material", name="Premium Microfiber PU Leather",
                          composition="100% Polyurethane-coated microfiber"),
                Component(type="material", name="Breathable Knit Mesh Lining",
                          composition="100% Polyester spacer knit"),
            ],
        ),
        Product(
            code="FSH014",
            name="Drift Aero High-Top",
            description="Breathable mesh paneling with secure fit.",
            target_fob=20.75,
            components=[
                Component(type="material", name="Leather", composition="100% Leather"),
                Component(type="material", name="Drift Aero AirMesh Upper",
                          composition="85% Polyester, 15% Elastane"),
            ],
        ),
        Product(
            code="FSH016",
            name="Vibe City High-Top",
            description="Stylish silhouette with reinforced toe guard.",
            target_fob=26.13,
            components=[
                Component(type="material", name="Premium PU Upper",
                          composition="100% Polyurethane (PU) coated fabric"),
                Component(type="material", name="Breathable Nylon Mesh", composition="100% Nylon"),
            ],
        ),
        Product(
            code="FSH019",
            name="Edge Urban High-Top",
            description="Durable leather overlays and grippy outsole.",
            target_fob=51.69,
            components=[
                Component(type="material", name="Full-Grain Leather Upper",
                          composition="100% Cowhide Leather (Full-Grain)"),
                Component(type="material", name="Nylon Mesh Lining", composition="100% Polyamide Nylon"),
            ],
        ),
        Product(
            code="FSH021",
            name="City Rise High-Top",
            description="Lightweight city sneaker with padded collar and responsive sole.",
            target_fob=31.89,
            components=[
                Component(type="material", name="City Rise Knit Upper",
                          composition="80% Polyester, 20% Elastane"),
                Component(type="component", name="EVA Insole", function="Cushioning and odor control"),
            ],
        ),
    )
}

DEFAULT_QUANTITIES: Dict[str, int] = {
    "FSH013": 10000,
    "FSH014": 5000,
    "FSH016": 5000,
    "FSH019": 5000,
    "FSH021": 5000,
}

MATERIAL_SUBSTITUTIONS: Dict[str, MaterialSubstitution] = {
    sub.original: sub
    for sub in (
        MaterialSubstitution(original="Full-Grain Leather Upper", suggested="Premium PU Leather",
                             savings_percent=35,
                             description="High-quality synthetic that mimics leather look and feel"),
        MaterialSubstitution(original="Premium Microfiber PU Leather", suggested="Standard PU Leather",
                             savings_percent=20,
                             description="Cost-effective alternative with similar durability"),
        MaterialSubstitution(original="Leather", suggested="Synthetic Leather Blend",
                             savings_percent=40,
                             description="Vegan-friendly option with good performance"),
        MaterialSubstitution(original="Premium PU Upper", suggested="Recycled PU Upper",
                             savings_percent=15,
                             description="Eco-friendly recycled materials at lower cost"),
        MaterialSubstitution(original="EVA Insole", suggested="Recycled EVA Insole",
                             savings_percent=10,
                             description="Sustainable alternative with same cushioning"),
    )
}


def find_material_substitution(components: Sequence[Component]) -> Optional[MaterialSubstitution]:
    """First material component with a known cheaper alternative."""
    for component in components:
        if component.type == "material" and component.name in MATERIAL_SUBSTITUTIONS:
            return MATERIAL_SUBSTITUTIONS[component.name]
    return None


def default_order() -> List[LineItemRequest]:
    return [LineItemRequest(product_id=code, quantity=qty) for code, qty in DEFAULT_QUANTITIES.items()]


# ===== COUNTERPARTIES =====

class CounterpartyProfile(WireModel):
    """Commercial profile of one supplier."""

    counterparty_id: str
    name: str
    quality_rating: float = Field(..., ge=0, le=5)
    margin_multiplier: float = Field(..., gt=0)
    lead_time_days: int = Field(..., gt=0)
    payment_terms: str
    personality: str = ""
    price_flexibility: float = Field(0.1, ge=0, lt=1)


DEFAULT_COUNTERPARTIES: Dict[str, CounterpartyProfile] = {
    p.counterparty_id: p
    for p in (
        CounterpartyProfile(
            counterparty_id="supplier-1",
            name="ChinaFootwear Co.",
            quality_rating=4.0,
            margin_multiplier=1.15,
            lead_time_days=45,
            payment_terms="33/33/33",
            personality="Value-focused, emphasizes volume discounts",
            price_flexibility=0.10,
        ),
        CounterpartyProfile(
            counterparty_id="supplier-2",
            name="VietnamPremium Ltd.",
            quality_rating=4.7,
            margin_multiplier=1.45,
            lead_time_days=25,
            payment_terms="30/70",
            personality="Quality-focused, defends premium pricing",
            price_flexibility=0.08,
        ),
        CounterpartyProfile(
            counterparty_id="supplier-3",
            name="IndonesiaExpress",
            quality_rating=4.0,
            margin_multiplier=1.30,
            lead_time_days=15,
            payment_terms="30/70",
            personality="Speed-focused, highlights fast delivery",
            price_flexibility=0.12,
        ),
    )
}


def create_counterparty_config(
    counterparty_id: str,
    profiles: Optional[Mapping[str, CounterpartyProfile]] = None,
) -> CounterpartyProfile:
    """Fresh copy of a counterparty profile for one negotiation.

    Raises:
        CatalogError: If ``counterparty_id`` is not a known profile.
    """
    profiles = DEFAULT_COUNTERPARTIES if profiles is None else profiles
    try:
        profile = profiles[counterparty_id]
    except KeyError:
        raise CatalogError(f"Unknown counterparty: {counterparty_id}") from None
    return profile.model_copy(deep=True)


# ===== PRICING =====

@dataclass(frozen=True)
class VolumeDiscount:
    percent: float
    description: str


def volume_discount(total_quantity: int) -> VolumeDiscount:
    if total_quantity >= 50000:
        return VolumeDiscount(12, "Elite Volume (50K+ units): 12% off")
    if total_quantity >= 25000:
        return VolumeDiscount(8, "Large Volume (25K+ units): 8% off")
    if total_quantity >= 10000:
        return VolumeDiscount(5, "Volume Discount (10K+ units): 5% off")
    return VolumeDiscount(0, "Standard pricing")


def build_line_items(
    requested: Sequence[LineItemRequest],
    profile: CounterpartyProfile,
    catalog: Optional[Mapping[str, Product]] = None,
) -> List[LineOffer]:
    """Price every requested product at this supplier's base rate.

    Base unit price is ``target_fob * margin_multiplier`` rounded to cents.
    Non-positive quantities and products missing from the catalog are
    skipped; misses are logged.
    """
    catalog = DEFAULT_PRODUCTS if catalog is None else catalog
    lines = []
    for item in requested:
        if item.quantity <= 0:
            continue
        product = catalog.get(item.product_id)
        if product is None:
            logger.warning(
                "Product %s not in catalog, skipping %d units for %s",
                item.product_id, item.quantity, profile.counterparty_id,
            )
            continue
        base_price = product.target_fob * profile.margin_multiplier
        lines.append(LineOffer(
            product_id=product.code,
            product_name=product.name,
            quantity=item.quantity,
            unit_price=round(base_price, 2),
            line_total=round(base_price * item.quantity, 2),
            material_substitution=find_material_substitution(product.components),
        ))
    return lines


def round_discount(round_num: int, flexibility: float) -> float:
    """Progressive supplier discount: half the flexibility per round, capped."""
    return min(round_num * flexibility * 0.5, flexibility)


@dataclass
class RoundQuote:
    """Reference pricing for one round after the discount schedule."""

    round_num: int
    discount: float
    line_items: List[LineOffer]
    subtotal: float
    volume_discount: VolumeDiscount
    volume_discount_amount: float
    average_unit_price: float

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.line_items)


def quote_round(
    line_items: Sequence[LineOffer],
    round_num: int,
    profile: CounterpartyProfile,
    volume: Optional[VolumeDiscount] = None,
    discount: Optional[float] = None,
) -> RoundQuote:
    """Apply the round's discount schedule, or an explicit ``discount``."""
    if discount is None:
        discount = round_discount(round_num, profile.price_flexibility)
    quantity = sum(line.quantity for line in line_items)
    volume = volume or volume_discount(quantity)

    discounted = [
        line.model_copy(update={
            "unit_price": round(line.unit_price * (1 - discount), 2),
            "line_total": round(line.unit_price * (1 - discount) * line.quantity, 2),
        })
        for line in line_items
    ]
    subtotal = sum(line.line_total for line in discounted)
    discount_amount = subtotal * (volume.percent / 100)
    average = (subtotal - discount_amount) / quantity if quantity else 0.0

    return RoundQuote(
        round_num=round_num,
        discount=discount,
        line_items=discounted,
        subtotal=subtotal,
        volume_discount=volume,
        volume_discount_amount=discount_amount,
        average_unit_price=average,
    )


def product_summary(
    requested: Sequence[LineItemRequest],
    catalog: Optional[Mapping[str, Product]] = None,
) -> str:
    """Human-readable order description, e.g. ``Pulse Pro High-Top (10,000 units)``."""
    catalog = DEFAULT_PRODUCTS if catalog is None else catalog
    parts = []
    for item in requested:
        if item.quantity <= 0:
            continue
        product = catalog.get(item.product_id)
        parts.append(f"{product.name} ({item.quantity:,} units)" if product else item.product_id)
    return ", ".join(parts)


# ===== YAML OVERRIDES =====

def _load_yaml(path: Union[str, Path], key: str) -> list:
    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}
    entries = data.get(key) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise CatalogError(f"{path}: expected a list under '{key}'")
    return entries


def load_catalog(path: Union[str, Path]) -> Dict[str, Product]:
    """Load products from a YAML file with a top-level ``products`` list."""
    products = [Product.model_validate(entry) for entry in _load_yaml(path, "products")]
    return {p.code: p for p in products}


def load_counterparties(path: Union[str, Path]) -> Dict[str, CounterpartyProfile]:
    """Load supplier profiles from a YAML file with a ``counterparties`` list."""
    profiles = [CounterpartyProfile.model_validate(e) for e in _load_yaml(path, "counterparties")]
    return {p.counterparty_id: p for p in profiles}
