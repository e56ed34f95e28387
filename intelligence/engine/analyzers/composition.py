"""Traffic composition analyzer: paid vs organic vs direct mix, best-converting channel."""
from __future__ import annotations

import logging

from ..findings import make_finding, rec
from ..formatting import format_pct
from ..models import AnalysisContext, CognitiveFinding, DataCube
from ..normalizer import safe_div

logger = logging.getLogger(__name__)

NAME = "composition"


def _share(cube: DataCube, names: list[str]) -> float:
    wanted = {n.lower() for n in names}
    return sum(c.session_share for c in cube.channels if c.channel.lower() in wanted)


def analyze_composition(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    findings: list[CognitiveFinding] = []
    if not cube.channels or sum(c.sessions for c in cube.channels) == 0:
        return findings
    r = ctx.rules("composition")
    paid = _share(cube, r["paid_channels"])
    organic = _share(cube, r["organic_channels"])
    direct = _share(cube, r["direct_channels"])

    if paid > r["paid_share_above"]:
        findings.append(make_finding(
            NAME, "paid-dependency", "channels",
            category="composition",
            severity="warning",
            title=f"{format_pct(paid, 0)} of traffic is paid",
            description=f"Organic brings only {format_pct(organic, 0)} of sessions. SEO work lowers acquisition cost over time.",
            metrics={"current": round(paid, 2), "target": r["paid_share_target"], "organic": round(organic, 2)},
            recommendations=[rec(
                "Invest in SEO and content to grow organic traffic",
                "high", "high",
                ["Optimize product pages for search", "Publish content around the catalogue", "Improve site speed"],
            )],
            constraint="traffic",
        ))

    if organic > r["organic_share_above"] and paid < r["organic_paid_below"]:
        findings.append(make_finding(
            NAME, "organic-strong", "channels",
            category="composition",
            severity="success",
            title=f"Strong organic base: {format_pct(organic, 0)} of traffic",
            description="Solid organic base. Ads can capture incremental demand without carrying the business alone.",
            metrics={"current": round(organic, 2)},
        ))

    if direct > r["direct_share_above"]:
        findings.append(make_finding(
            NAME, "direct-strong", "channels",
            category="composition",
            severity="success",
            title=f"{format_pct(direct, 0)} direct traffic",
            description="Good brand recall. This traffic has no acquisition cost.",
            metrics={"current": round(direct, 2)},
        ))

    converting = [c for c in cube.channels if c.sessions > r["min_channel_sessions"] and c.conversions > 0]
    if len(converting) > 1 and cube.web is not None and cube.web.sessions:
        best = sorted(converting, key=lambda c: (-c.conversion_rate, c.channel))[0]
        avg_rate = safe_div(cube.web.purchases, cube.web.sessions) * 100
        if avg_rate and best.conversion_rate > avg_rate * r["best_channel_multiple"]:
            findings.append(make_finding(
                NAME, "best-channel", best.channel,
                category="composition",
                severity="success",
                title=f"\"{best.channel}\" converts {format_pct(best.conversion_rate, 2)}, {best.conversion_rate / avg_rate:.1f}x the average",
                description=f"Conversion {format_pct(best.conversion_rate, 2)} vs {format_pct(avg_rate, 2)} overall. Point more budget at this channel.",
                metrics={"current": best.conversion_rate, "target": round(avg_rate, 2), "entity": best.channel},
                recommendations=[rec(f"Increase investment in the \"{best.channel}\" channel", "high", "low")],
                constraint="traffic",
            ))

    logger.debug("composition analyzer | findings=%s", len(findings))
    return findings
