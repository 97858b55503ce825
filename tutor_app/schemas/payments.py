from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    plan_type: str = Field(..., alias="planType")

    model_config = {"populate_by_name": True}
