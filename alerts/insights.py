"""Read-only alert history insights for a user's buildings."""
import calendar
import logging
from collections import Counter
from datetime import timedelta

from models.enums import AlertType, Period, Priority
from utils.clock import utc_now

logger = logging.getLogger("buildingalerts.alerts.insights")

TOP_ISSUES = 5
SIGNATURE_WORDS = 3
TREND_BAND_PCT = 10
CRITICAL_VOLUME = 5
LOW_RESOLUTION_RATE = 50
LOW_RESOLUTION_MIN_ALERTS = 10
RECURRING_ISSUE_COUNT = 5

PERIOD_MONTHS = {Period.MONTH: 1, Period.QUARTER: 3, Period.YEAR: 12}


def _months_before(dt, months):
    month_index = dt.month - 1 - months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def get_time_range(period, now=None):
    """Trailing window for ``period``; unknown periods fall back to a month."""
    end = now or utc_now()
    try:
        period = Period(period)
    except ValueError:
        period = Period.MONTH
    if period == Period.WEEK:
        start = end - timedelta(days=7)
    else:
        start = _months_before(end, PERIOD_MONTHS[period])
    return start, end


def issue_signature(title):
    return " ".join(title.split()[:SIGNATURE_WORDS])


def identify_common_issues(alerts, limit=TOP_ISSUES):
    counts = Counter(issue_signature(a.title) for a in alerts)
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [{"issue": issue, "count": count} for issue, count in ranked[:limit]]


def calculate_alert_trends(alerts, start, end):
    """Daily counts plus a comparison of the older and newer half of the window."""
    daily = Counter(a.created_at.date().isoformat() for a in alerts)
    midpoint = start + (end - start) / 2
    older = sum(1 for a in alerts if a.created_at < midpoint)
    newer = len(alerts) - older

    if older:
        change = (newer - older) / older * 100
    else:
        change = 100.0 if newer else 0.0

    if change > TREND_BAND_PCT:
        pattern = "increasing"
    elif change < -TREND_BAND_PCT:
        pattern = "decreasing"
    else:
        pattern = "stable"

    return {
        "increasing": pattern == "increasing",
        "percentage_change": round(change, 1),
        "pattern": pattern,
        "daily": dict(sorted(daily.items())),
    }


def rank_buildings(alerts, buildings):
    counts = Counter(a.building_id for a in alerts)
    critical = Counter(a.building_id for a in alerts if a.priority == Priority.CRITICAL)
    ranking = [
        {
            "building_id": b.id,
            "building_name": b.name,
            "building_type": b.type,
            "count": counts.get(b.id, 0),
            "critical": critical.get(b.id, 0),
        }
        for b in buildings
    ]
    ranking.sort(key=lambda r: (-r["count"], -r["critical"], r["building_name"]))
    return ranking


def generate_recommendations(alerts, resolution_rate, common_issues):
    recommendations = []

    critical_count = sum(1 for a in alerts if a.priority == Priority.CRITICAL)
    if critical_count > CRITICAL_VOLUME:
        recommendations.append({
            "priority": "high",
            "title": "High Critical Alert Volume",
            "message": "Consider implementing preventive maintenance to reduce critical alerts.",
            "action": "Schedule maintenance review",
        })

    if len(alerts) >= LOW_RESOLUTION_MIN_ALERTS and resolution_rate < LOW_RESOLUTION_RATE:
        recommendations.append({
            "priority": "medium",
            "title": "Low Resolution Rate",
            "message": f"Only {resolution_rate:.0f}% of alerts in this period were resolved.",
            "action": "Review open alerts and assign owners",
        })

    if common_issues and common_issues[0]["count"] >= RECURRING_ISSUE_COUNT:
        top = common_issues[0]
        recommendations.append({
            "priority": "medium",
            "title": "Recurring Issue",
            "message": f"'{top['issue']}' occurred {top['count']} times in this period.",
            "action": "Investigate root cause",
        })

    return recommendations


class InsightAggregator:
    def __init__(self, store, clock=utc_now):
        self.store = store
        self.clock = clock

    def get_alert_insights(self, user_id, period="month"):
        """Summarize alerts for the user's buildings; None if the user owns no buildings."""
        buildings = self.store.list_buildings(owner_id=user_id)
        if not buildings:
            return None

        start, end = get_time_range(period, self.clock())
        alerts = self.store.list_alerts(
            building_ids=[b.id for b in buildings], since=start, until=end,
        )

        total = len(alerts)
        resolved = sum(1 for a in alerts if a.is_resolved)
        resolution_rate = (resolved / total) * 100 if total else 0
        common_issues = identify_common_issues(alerts)

        return {
            "period": period,
            "time_range": {"from": start.isoformat(), "to": end.isoformat()},
            "total_alerts": total,
            "critical_alerts": sum(1 for a in alerts if a.priority == Priority.CRITICAL),
            "resolved_alerts": resolved,
            "resolution_rate": resolution_rate,
            "by_type": {t.value: sum(1 for a in alerts if a.type == t) for t in AlertType},
            "by_priority": {p.value: sum(1 for a in alerts if a.priority == p) for p in Priority},
            "alert_trends": calculate_alert_trends(alerts, start, end),
            "common_issues": common_issues,
            "building_ranking": rank_buildings(alerts, buildings),
            "recommendations": generate_recommendations(alerts, resolution_rate, common_issues),
        }
