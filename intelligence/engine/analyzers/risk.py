"""Risk analyzer: SKUs tagged for pause, bounce, cart abandonment, SKU concentration, funnel leaks."""
from __future__ import annotations

import logging

from ..financial_impact import (
    quantify_bounce,
    quantify_cart_abandonment,
    quantify_concentration_risk,
    quantify_pause,
    quantify_revenue_uplift,
)
from ..findings import make_finding, rec
from ..formatting import format_brl, format_pct, format_roas
from ..models import AnalysisContext, CognitiveFinding, DataCube

logger = logging.getLogger(__name__)

NAME = "risk"

def analyze_risks(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    findings: list[CognitiveFinding] = []
    r = ctx.rules("risk")

    # 1. SKUs tagged pause with meaningful spend
    to_pause = [s for s in cube.skus if s.status_tag == "pause"]
    spend = sum(s.cost for s in to_pause)
    if to_pause and spend > r["pause_min_spend"]:
        revenue = sum(s.revenue for s in to_pause)
        margin = sum(s.margin_pct * s.revenue for s in to_pause) / revenue if revenue else 0.0
        findings.append(make_finding(
            NAME, "pause-skus", "skus",
            category="risk",
            severity="warning",
            title=f"{len(to_pause)} SKU(s) should be paused: {format_brl(spend)} at risk",
            description="SKUs below the pause thresholds: " + ", ".join(s.name for s in to_pause[:3]) + ".",
            metrics={"current": round(spend, 2), "entity": to_pause[0].name, "count": len(to_pause)},
            recommendations=[rec(
                "Pause ads for SKUs tagged pause",
                "high", "low",
                [f"Pause \"{s.name}\" (ROAS {format_roas(s.roas)}, CPA {format_brl(s.cpa)})" for s in to_pause[:3]],
            )],
            financial_impact=quantify_pause(spend, revenue, margin),
            constraint="margin",
        ))

    web = cube.web
    if web is not None:
        # 2. Bounce
        if web.bounce_rate > r["bounce_rate_above"]:
            findings.append(make_finding(
                NAME, "bounce", "site",
                category="risk",
                severity="danger" if web.bounce_rate > r["bounce_rate_above"] + r["bounce_danger_step"] else "warning",
                title=f"Bounce rate at {format_pct(web.bounce_rate * 100)}",
                description="More than half of visitors leave without interacting. Check speed, relevance of traffic and the landing page.",
                metrics={"current": web.bounce_rate, "target": r["bounce_target"]},
                recommendations=[rec(
                    "Improve the landing page experience",
                    "high", "high",
                    ["Measure load speed", "Check ad vs landing page relevance", "Strengthen the call to action above the fold"],
                )],
                financial_impact=quantify_bounce(web.sessions, web.bounce_rate, r["bounce_target"], web.conversion_rate, web.avg_order_value),
                constraint="traffic",
            ))

        # 3. Cart abandonment
        if web.cart_abandonment_rate > r["cart_abandonment_above"]:
            findings.append(make_finding(
                NAME, "cart-abandonment", "site",
                category="risk",
                severity="danger" if web.cart_abandonment_rate > r["cart_abandonment_above"] + r["cart_abandonment_danger_step"] else "warning",
                title=f"Cart abandonment at {format_pct(web.cart_abandonment_rate)}",
                description="Most shoppers who add to cart do not finish. Investigate checkout, shipping and payment.",
                metrics={"current": web.cart_abandonment_rate, "target": r["cart_abandonment_target"]},
                recommendations=[rec(
                    "Optimize the checkout funnel",
                    "high", "medium",
                    ["Remove checkout steps", "Offer free shipping above a threshold", "Add payment options"],
                )],
                financial_impact=quantify_cart_abandonment(
                    web.purchases, web.cart_abandonment_rate, r["cart_abandonment_target"], web.avg_order_value,
                ),
                constraint="conversion",
            ))

    # 4. Revenue concentrated in one SKU (cube keeps SKUs sorted by revenue desc)
    if len(cube.skus) > r["sku_concentration_min_skus"]:
        top = cube.skus[0]
        if top.revenue_share > r["sku_concentration_above"]:
            findings.append(make_finding(
                NAME, "sku-concentration", top.sku,
                category="risk",
                severity="warning",
                title=f"{format_pct(top.revenue_share, 0)} of revenue comes from one SKU",
                description=f"\"{top.name}\" is more than half of sales. A drop in this product hits everything.",
                metrics={"current": top.revenue_share, "target": r["sku_concentration_target"], "entity": top.name},
                recommendations=[rec("Spread investment across more SKUs", "medium", "medium")],
                financial_impact=quantify_concentration_risk(top.revenue, top.revenue_share, top.name),
            ))

    # 5. Funnel leak: the steepest drop-off above the threshold
    leaks = [s for s in cube.funnel if s.dropoff_pct > r["funnel_leak_dropoff_above"]]
    if leaks:
        worst = sorted(leaks, key=lambda s: -s.dropoff_pct)[0]
        base_revenue = cube.web.purchase_revenue if cube.web else (cube.account.revenue if cube.account else 0.0)
        findings.append(make_finding(
            NAME, "funnel-leak", worst.step,
            category="risk",
            severity="warning",
            title=f"{format_pct(worst.dropoff_pct)} of users drop at \"{worst.step}\"",
            description=f"The steepest funnel loss happens entering \"{worst.step}\" ({worst.count} users left).",
            metrics={"current": worst.dropoff_pct, "target": r["funnel_leak_dropoff_above"], "entity": worst.step},
            recommendations=[rec(f"Audit the \"{worst.step}\" step for friction", "medium", "medium")],
            financial_impact=quantify_revenue_uplift(
                base_revenue, r["funnel_leak_recovery_pct"], f"Recovering part of the \"{worst.step}\" drop-off",
                confidence=r["funnel_leak_confidence"],
            ),
            constraint="conversion",
        ))

    logger.debug("risk analyzer | findings=%s", len(findings))
    return findings
