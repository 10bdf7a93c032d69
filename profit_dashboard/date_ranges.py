"""
报表时间范围：按服务器本地时钟把 today / yesterday / last7days ... 转成 (start, end)。

注意：只有 yesterday 是闭区间，end 固定为当天 23:59:59.999；
其余范围的 end 都是「现在」，不是次日零点。现有报表口径依赖这一点，不要改。

起点先在自然日上做加减，再换成当天的本地零点；跨夏令时切换时，
零点的 UTC 偏移取那一天自己的，不沿用「现在」的偏移。
"""
import calendar
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional

DATE_RANGES = (
    "today",
    "yesterday",
    "last7days",
    "last30days",
    "thisweek",
    "thismonth",
    "thisyear",
)
DEFAULT_RANGE = "today"

# date.weekday(): 周一 = 0
_WEEK_START_WEEKDAY = {"monday": 0, "sunday": 6}

_END_OF_DAY = time(23, 59, 59, 999000)


def _local_now() -> datetime:
    # 不带时区：交给 _at 按系统时区逐日换算偏移
    return datetime.now()


def _at(day: date, tz: Optional[tzinfo], clock: time = time.min) -> datetime:
    """day 当天 clock 时刻；tz 为空时按系统本地时区（含夏令时）定偏移"""
    naive = datetime.combine(day, clock)
    if tz is None:
        return naive.astimezone()
    return naive.replace(tzinfo=tz)


def resolve_date_range(
    range_name: Optional[str],
    now: Optional[datetime] = None,
    week_start: str = "sunday",
) -> tuple[datetime, datetime]:
    """
    返回 (start, end)，都带时区。未知的 range_name 按 today 处理。
    now 默认取系统本地时间；测试可传入带时区的固定值（如 ZoneInfo），
    此时零点按 now.tzinfo 换算。
    """
    now = now or _local_now()
    tz = now.tzinfo
    today = now.date()
    name = (range_name or DEFAULT_RANGE).strip().lower()
    end = now if tz is not None else now.astimezone()

    if name == "yesterday":
        day = today - timedelta(days=1)
        end = _at(day, tz, _END_OF_DAY)
    elif name == "last7days":
        day = today - timedelta(days=7)
    elif name == "last30days":
        day = today - timedelta(days=30)
    elif name == "thisweek":
        first = _WEEK_START_WEEKDAY.get(week_start.lower(), 6)
        day = today - timedelta(days=(today.weekday() - first) % 7)
    elif name == "thismonth":
        day = today.replace(day=1)
    elif name == "thisyear":
        day = today.replace(month=1, day=1)
    else:
        day = today

    return _at(day, tz), end


def month_ago_midnight(now: Optional[datetime] = None) -> datetime:
    """上个月的同一天零点；上个月没有这一天时取月末"""
    now = now or _local_now()
    year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
    day = min(now.day, calendar.monthrange(year, month)[1])
    return _at(date(year, month, day), now.tzinfo)


def expense_window(start: datetime, end: datetime) -> tuple[date, date]:
    """费用按自然日比较：[start 当天, end 当天] 两端都包含"""
    return start.date(), end.date()


def to_shopify_ts(dt: datetime) -> str:
    """Shopify created_at_min / created_at_max 参数格式（ISO 8601，毫秒，带时区）"""
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt.isoformat(timespec="milliseconds")
