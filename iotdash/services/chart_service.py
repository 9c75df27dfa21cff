"""
Chart.js datasets for channel data.

One line dataset per declared field, in declaration order, over the points
that fall inside the requested timeframe. Labels are rendered in UTC.
"""
import datetime
from typing import Dict, List, Optional

from iotdash.errors import ValidationFailed
from iotdash.models import (
    Channel,
    ChartData,
    ChartDataset,
    ChartOptions,
    DataPoint,
    PluginOptions,
    TitleOptions,
)
from iotdash.utils import utcnow

COLORS = [
    "rgba(54, 162, 235, 1)",   # blue
    "rgba(255, 99, 132, 1)",   # red
    "rgba(75, 192, 192, 1)",   # green
    "rgba(255, 206, 86, 1)",   # yellow
    "rgba(153, 102, 255, 1)",  # purple
    "rgba(255, 159, 64, 1)",   # orange
    "rgba(199, 199, 199, 1)",  # gray
    "rgba(83, 102, 255, 1)",   # indigo
]

# None means no cutoff
TIMEFRAMES: Dict[str, Optional[datetime.timedelta]] = {
    "1h": datetime.timedelta(hours=1),
    "6h": datetime.timedelta(hours=6),
    "24h": datetime.timedelta(days=1),
    "7d": datetime.timedelta(days=7),
    "30d": datetime.timedelta(days=30),
    "all": None,
}

DEFAULT_TIMEFRAME = "24h"


def format_label(moment: datetime.datetime) -> str:
    # e.g. "14:05:09, Mar 7"
    return f"{moment:%H:%M:%S}, {moment:%b} {moment.day}"


def filter_timeframe(
    points: List[DataPoint],
    timeframe: str,
    now: Optional[datetime.datetime] = None,
) -> List[DataPoint]:
    """Return the points inside ``timeframe``, oldest first."""
    if timeframe not in TIMEFRAMES:
        raise ValidationFailed(f"Unknown timeframe '{timeframe}'. Use one of: {', '.join(TIMEFRAMES)}")

    ordered = sorted(points, key=lambda p: p.created_at)
    window = TIMEFRAMES[timeframe]
    if window is None:
        return ordered
    cutoff = (now or utcnow()) - window
    return [p for p in ordered if p.created_at >= cutoff]


def build_chart_data(
    channel: Channel,
    points: List[DataPoint],
    timeframe: str = DEFAULT_TIMEFRAME,
    now: Optional[datetime.datetime] = None,
) -> ChartData:
    selected = filter_timeframe(points, timeframe, now)
    labels = [format_label(p.created_at) for p in selected]

    datasets = []
    for index, field in enumerate(channel.fields):
        color = COLORS[index % len(COLORS)]
        datasets.append(ChartDataset(
            label=field.name,
            data=[p.field_values.get(field.field_number, 0) for p in selected],
            border_color=color,
            background_color=color.replace("1)", "0.2)"),
            fill=False,
            tension=0.4,
        ))

    return ChartData(labels=labels, datasets=datasets)


def build_chart_options(channel: Channel) -> ChartOptions:
    return ChartOptions(plugins=PluginOptions(title=TitleOptions(text=channel.name)))
