"""
Card Comps — Plain-text Comp Report

Renders a PricingReport as the human-readable comp sheet stored next to a
card:

    Card: Luka Doncic 2018 Panini Prizm #280
    Condition: PSA 10
    Generated: 2026-02-23T12:00:00+00:00

    --- eBay ---
    Market Value: $150.00
    ...

    --- Aggregate ---
    Average: $150.00
"""

from __future__ import annotations

from cardcomps.models.comps import PopulationSnapshot, PricingReport, SourceResult


def _usd(value: float) -> str:
    return f"${value:.2f}"


def _fmt_source(source: SourceResult) -> list[str]:
    lines = [f"--- {source.source} ---"]
    if source.error:
        lines.append(f"Error: {source.error}")
        return lines

    if source.market_value is not None:
        lines.append(f"Market Value: {_usd(source.market_value)}")
    if source.average_price is not None:
        lines.append(f"Average Price: {_usd(source.average_price)}")
    if source.low is not None and source.high is not None:
        lines.append(f"Range: {_usd(source.low)} - {_usd(source.high)}")
    if source.sales:
        lines.append("Recent Sales:")
        for sale in source.sales:
            grade = f", {sale.grade}" if sale.grade else ""
            lines.append(f"  {sale.date or 'unknown date'} - {_usd(sale.price)} ({sale.venue}{grade})")
    return lines


def _fmt_population(pop: PopulationSnapshot, multiplier: float | None) -> list[str]:
    lines = [
        "--- Population ---",
        f"{pop.grading_company} {pop.target_grade}: {pop.target_grade_pop} of {pop.total_graded} graded",
        f"Higher grades: {pop.higher_grade_pop}",
        f"Percentile: {pop.percentile:.2f}%",
        f"Rarity: {pop.rarity_tier.value}",
    ]
    if multiplier is not None:
        lines.append(f"Multiplier: x{multiplier:.3f}")
    return lines


def format_comp_report(report: PricingReport) -> str:
    lines: list[str] = [
        f"Card: {report.player} {report.year} {report.brand} #{report.card_number}"
    ]
    if report.condition:
        lines.append(f"Condition: {report.condition}")
    lines.append(f"Generated: {report.generated_at.isoformat()}")
    lines.append("")

    for source in report.sources:
        lines.extend(_fmt_source(source))
        lines.append("")

    if report.aggregate_average is not None:
        lines.append("--- Aggregate ---")
        lines.append(f"Average: {_usd(report.aggregate_average)}")
        if report.aggregate_low is not None:
            lines.append(f"Low: {_usd(report.aggregate_low)}")
        if report.aggregate_high is not None:
            lines.append(f"High: {_usd(report.aggregate_high)}")

    if report.pop_data is not None:
        if report.aggregate_average is not None:
            lines.append("")
        lines.extend(_fmt_population(report.pop_data, report.pop_multiplier))
        if report.pop_adjusted_average is not None:
            lines.append(f"Pop-adjusted Average: {_usd(report.pop_adjusted_average)}")

    return "\n".join(lines) + "\n"
