"""
날짜 유틸리티 (순수 함수)
"""
import calendar
from datetime import date, datetime, timedelta
from typing import Union

DateLike = Union[date, datetime, str]

def parse_date(value: DateLike) -> date:
    """date / datetime / ISO 문자열을 date로 변환"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])

def to_date_string(value: DateLike) -> str:
    return parse_date(value).isoformat()

def add_months(value: DateLike, months: int) -> date:
    """달력 기준 월 가산. 대상 월의 말일을 넘으면 말일로 맞춘다 (1/31 + 1개월 = 2/28 또는 2/29)"""
    base = parse_date(value)
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)

def add_days(value: DateLike, days: int) -> date:
    return parse_date(value) + timedelta(days=days)

def days_diff(start: DateLike, end: DateLike) -> int:
    """end - start (일). end가 과거면 음수"""
    return (parse_date(end) - parse_date(start)).days
