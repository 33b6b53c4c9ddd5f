"""
Count variance report (``stock_kernel.domain.count_report``).

Pure function from a fully-loaded CountView to a CountReport: per-area item
lists with value subtotals, overall progress, and the lines whose variance
the VariancePolicy considers significant.
"""

from decimal import Decimal

from stock_kernel.domain.dtos import (
    AreaReport,
    CountReport,
    CountReportSummary,
    CountView,
    VarianceLine,
)
from stock_kernel.domain.quantities import ZERO, round_value
from stock_kernel.domain.values import AreaStatus
from stock_kernel.domain.variance import VariancePolicy, variance_percent


def build_count_report(count: CountView, policy: VariancePolicy) -> CountReport:
    areas: list[AreaReport] = []
    variances: list[VarianceLine] = []
    products: set = set()
    total_value = ZERO

    for area in count.areas:
        subtotal = sum((item.total_value for item in area.items), ZERO)
        total_value += subtotal
        areas.append(
            AreaReport(
                area_id=area.id,
                name=area.name,
                order=area.order,
                status=area.status,
                items=area.items,
                item_count=len(area.items),
                subtotal_value=subtotal,
            )
        )
        for item in area.items:
            products.add(item.product_id)
            if not policy.is_significant(item.variance, item.expected_qty):
                continue
            variances.append(
                VarianceLine(
                    product_id=item.product_id,
                    area_id=area.id,
                    area_name=area.name,
                    expected_qty=item.expected_qty,
                    counted_qty=item.total_quantity,
                    variance=item.variance,
                    variance_percent=variance_percent(item.variance, item.expected_qty),
                    unit_cost=item.unit_cost,
                    variance_value=item.variance * item.unit_cost,
                )
            )

    total_areas = len(areas)
    completed = sum(1 for a in areas if a.status == AreaStatus.COMPLETED)
    progress = (
        round_value(Decimal(completed) / Decimal(total_areas) * 100)
        if total_areas
        else ZERO
    )
    # Largest absolute value impact first
    variances.sort(key=lambda line: abs(line.variance_value), reverse=True)

    return CountReport(
        count=count,
        summary=CountReportSummary(
            total_items=len(products),
            total_value=total_value,
            areas_completed=completed,
            total_areas=total_areas,
            progress_percent=progress,
        ),
        areas=tuple(areas),
        significant_variances=tuple(variances),
    )
