"""Canonical swap route produced by the aggregator adapter."""

from decimal import ROUND_FLOOR, Decimal

from pydantic import BaseModel, Field, model_validator

from dust_vacuum.models.types import U64, AssetId, ObjectId


class RouteStep(BaseModel):
    """One pool hop. ``a_to_b`` means asset_a is sold for asset_b."""

    pool_id: ObjectId = Field(alias="poolId")
    a_to_b: bool = Field(alias="a2b")
    asset_a: AssetId = Field(alias="coinTypeA")
    asset_b: AssetId = Field(alias="coinTypeB")

    model_config = {"populate_by_name": True}

    @property
    def input_asset(self) -> str:
        return self.asset_a if self.a_to_b else self.asset_b

    @property
    def output_asset(self) -> str:
        return self.asset_b if self.a_to_b else self.asset_a


class Route(BaseModel):
    """A resolved path converting ``from_asset`` into ``to_asset``.

    Steps must form a connected path: the first step consumes from_asset,
    each step's output feeds the next, and the last step yields to_asset. An
    empty step list is rejected; callers treat that as "no route".
    """

    from_asset: AssetId = Field(alias="fromAsset")
    to_asset: AssetId = Field(alias="toAsset")
    input_amount: U64 = Field(alias="amountIn")
    output_amount: U64 = Field(alias="amountOut")
    price_impact: Decimal | None = Field(default=None, alias="priceImpact")
    steps: list[RouteStep] = Field(min_length=1)

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _check_connected(self) -> "Route":
        current = self.from_asset
        for index, step in enumerate(self.steps):
            if step.input_asset != current:
                raise ValueError(
                    f"Route step {index} consumes {step.input_asset}, expected {current}"
                )
            current = step.output_asset
        if current != self.to_asset:
            raise ValueError(f"Route ends at {current}, expected {self.to_asset}")
        return self

    @property
    def is_multihop(self) -> bool:
        return len(self.steps) > 1

    @property
    def pools(self) -> list[str]:
        return [step.pool_id for step in self.steps]

    def minimum_output(self, slippage_tolerance: Decimal) -> int:
        """Quoted output reduced by the slippage tolerance, rounded down.

        Example: output 2_000_000 at 0.5% slippage gives 1_990_000.
        """
        scaled = Decimal(self.output_amount) * (Decimal(1) - slippage_tolerance)
        return int(scaled.to_integral_value(rounding=ROUND_FLOOR))
