"""
Package construction for rate requests.

Line items are turned into a sorted list of weights (splitting quantities that
would not fit in one package) and the weights are then packed greedily,
smallest first, into packages no heavier than the destination's cap.

Greedy first-fit over ascending weights is an approximation: it does not
guarantee the minimum number of packages.
"""
import logging
import math
from typing import List

from shipping_rates.core.config import Settings
from shipping_rates.core.exceptions import MissingWeightError, OverweightUnitError
from shipping_rates.models.order import LineItem, Order
from shipping_rates.modules.shipping.carriers.base import Package, UnitSystem

logger = logging.getLogger(__name__)


def unit_weight_for(line_item: LineItem, settings: Settings) -> float:
    """
    Weight of one unit after the default-weight fallback and unit multiplier.

    Raises:
        MissingWeightError: the item has no weight and DEFAULT_WEIGHT is 0
    """
    weight = float(line_item.weight or 0)
    if weight <= 0:
        weight = settings.DEFAULT_WEIGHT
    if weight <= 0:
        raise MissingWeightError(
            f"Variant {line_item.variant_id} has no weight and no default weight is configured",
            variant_id=line_item.variant_id,
        )
    return weight * settings.UNIT_MULTIPLIER


def split_line_item(line_item: LineItem, unit_weight: float, max_weight: float) -> List[float]:
    """
    Weights for one line item, split into chunks that each fit under max_weight.

    Raises:
        MissingWeightError: unit_weight is not positive
        OverweightUnitError: a single unit does not fit under max_weight
    """
    quantity = line_item.quantity

    if unit_weight <= 0:
        raise MissingWeightError(
            f"Variant {line_item.variant_id} has a non-positive unit weight ({unit_weight:g})",
            variant_id=line_item.variant_id,
        )

    if max_weight <= 0:
        return [unit_weight * quantity]

    if unit_weight >= max_weight:
        raise OverweightUnitError(
            f"The maximum per package weight for the selected service "
            f"to the selected country is {max_weight:g}.",
            max_weight=max_weight,
            unit_weight=unit_weight,
            variant_id=line_item.variant_id,
        )

    max_quantity = math.floor(max_weight / unit_weight)
    if quantity <= max_quantity:
        return [unit_weight * quantity]

    weights = []
    while quantity > 0:
        chunk = min(max_quantity, quantity)
        weights.append(unit_weight * chunk)
        quantity -= chunk
    return weights


def convert_order_to_weights(order: Order, max_weight: float, settings: Settings) -> List[float]:
    """Flat, ascending list of line item weights for an order."""
    weights: List[float] = []
    for line_item in order.line_items:
        weights.extend(split_line_item(line_item, unit_weight_for(line_item, settings), max_weight))
    return sorted(weights)


def build_packages(weights: List[float], max_weight: float, units: UnitSystem) -> List[Package]:
    """
    Pack ascending weights into packages.

    max_weight <= 0 puts everything in a single package. An empty weight list
    yields no packages.
    """
    if not weights:
        return []

    if max_weight <= 0:
        return [Package(weight=sum(weights), units=units)]

    packages = []
    package_weight = 0.0
    for weight in weights:
        if package_weight + weight <= max_weight:
            package_weight += weight
        else:
            if package_weight > 0:
                packages.append(Package(weight=package_weight, units=units))
            package_weight = weight

    if package_weight > 0:
        packages.append(Package(weight=package_weight, units=units))

    return packages


def packages_for_order(order: Order, max_weight: float, settings: Settings) -> List[Package]:
    """Convert an order's line items into packages for the carrier."""
    weights = convert_order_to_weights(order, max_weight, settings)
    packages = build_packages(weights, max_weight, UnitSystem(settings.UNITS))
    logger.debug(
        f"Order {order.number}: {len(weights)} weight(s) packed into {len(packages)} package(s) "
        f"(max weight {max_weight:g})"
    )
    return packages
