"""Sales Records: opening opportunities against existing customers and products."""

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError
from db.models import Customer, Product, SalesOpportunity, SalesRep
from dispatch.schemas import CreateOpportunityParams

logger = structlog.get_logger()

NEXT_STEPS = [
    "Schedule follow-up call with customer",
    "Prepare product demonstration",
    "Create proposal document",
]


async def create_sales_opportunity(db: AsyncSession, params: CreateOpportunityParams) -> dict:
    """Insert an open opportunity once the customer, product and rep are confirmed to exist."""
    customer = await db.get(Customer, params.customer_id)
    if customer is None:
        raise NotFoundError("Customer", params.customer_id)
    product = await db.get(Product, params.product_id)
    if product is None:
        raise NotFoundError("Product", params.product_id)
    if params.sales_rep_id is not None and await db.get(SalesRep, params.sales_rep_id) is None:
        raise NotFoundError("Sales rep", params.sales_rep_id)

    opportunity = SalesOpportunity(
        customer_id=customer.id,
        product_id=product.id,
        sales_rep_id=params.sales_rep_id,
        quantity=params.quantity,
        estimated_value=params.estimated_value,
        priority=params.priority,
        status="open",
        notes=params.notes,
        created_at=datetime.utcnow(),
    )
    db.add(opportunity)
    await db.commit()
    logger.info(
        "opportunity.created",
        opportunity_id=opportunity.id,
        customer_id=customer.id,
        product_id=product.id,
    )

    return {
        "opportunity": {
            **opportunity.to_dict(),
            "customer": customer.to_dict(),
            "product": product.to_dict(),
        },
        "message": "Sales opportunity created successfully",
        "nextSteps": list(NEXT_STEPS),
    }
